"""
Authentication API tests.

Covers login/logout, self-service registration through emailed codes, the
two-step password reset, and password change.
"""

import re

import pytest

from stockroom.extensions import db, mail
from stockroom.models import AuditLogEntry, User

from conftest import PASSWORD, auth_headers, get_auth_token

NEW_PASSWORD = "NewPassword456!"
CODE_RE = re.compile(r"code is: (\d{6})")


def _code_from(outbox) -> str:
    assert len(outbox) == 1
    match = CODE_RE.search(outbox[0].body)
    assert match, outbox[0].body
    return match.group(1)


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_role(self, client, admin_user):
        resp = client.post("/api/login", json={"username": "admin", "password": PASSWORD})

        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["username"] == "admin"
        assert resp.json["role"] == "admin"
        assert resp.json["token"]
        assert "password_hash" not in resp.json["user"]

    def test_login_by_email(self, client, viewer_user):
        resp = client.post("/api/login", json={"username": "viewer@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["username"] == "viewer"

    def test_wrong_password(self, client, admin_user):
        resp = client.post("/api/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_unknown_user(self, client, db_session):
        resp = client.post("/api/login", json={"username": "ghost", "password": PASSWORD})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/login", json={"username": "admin"}).status_code == 400

    def test_login_is_audited(self, client, admin_user):
        client.post("/api/login", json={"username": "admin", "password": PASSWORD})
        actions = [e.action for e in db.session.query(AuditLogEntry)]
        assert actions == ["login_success"]

    def test_logout_revokes_token(self, client, admin_user, product):
        headers = auth_headers(get_auth_token(client, "admin"))

        resp = client.post("/api/logout", headers=headers)
        assert resp.status_code == 200

        resp = client.get("/transactions", headers=headers)
        assert resp.status_code == 401

    def test_logout_without_token(self, client, db_session):
        assert client.post("/api/logout").status_code == 401


# =============================================================================
# REGISTRATION
# =============================================================================


class TestRegistrationApi:

    def test_send_code_then_register(self, client, db_session):
        with mail.record_messages() as outbox:
            resp = client.post("/api/send-code", json={"username": "alice", "email": "alice@example.com"})
        assert resp.status_code == 200
        assert resp.json["expires_in_seconds"] == 180
        assert outbox[0].recipients == ["alice@example.com"]
        code = _code_from(outbox)

        resp = client.post("/api/register", json={
            "username": "alice",
            "email": "alice@example.com",
            "password": PASSWORD,
            "code": code,
        })
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "viewer"

        assert get_auth_token(client, "alice") is not None

    def test_register_with_wrong_code(self, client, db_session):
        with mail.record_messages() as outbox:
            client.post("/api/send-code", json={"username": "alice", "email": "alice@example.com"})
        code = _code_from(outbox)
        wrong = "000000" if code != "000000" else "111111"

        resp = client.post("/api/register", json={
            "username": "alice",
            "email": "alice@example.com",
            "password": PASSWORD,
            "code": wrong,
        })
        assert resp.status_code == 400

    def test_register_without_code_issued(self, client, db_session):
        resp = client.post("/api/register", json={
            "username": "alice",
            "email": "alice@example.com",
            "password": PASSWORD,
            "code": "123456",
        })
        assert resp.status_code == 400

    def test_register_missing_fields(self, client, db_session):
        resp = client.post("/api/register", json={"username": "alice", "password": PASSWORD})
        assert resp.status_code == 400

    def test_send_code_for_registered_username(self, client, admin_user):
        resp = client.post("/api/send-code", json={"username": "admin", "email": "x@example.com"})
        assert resp.status_code == 409

    def test_send_code_missing_email(self, client, db_session):
        assert client.post("/api/send-code", json={"username": "alice"}).status_code == 400

    def test_delivery_failure_is_500_and_persists_nothing(self, client, db_session, monkeypatch):
        def refuse(self, message):
            raise ConnectionRefusedError("smtp down")

        monkeypatch.setattr(type(mail), "send", refuse)

        resp = client.post("/api/send-code", json={"username": "alice", "email": "alice@example.com"})
        assert resp.status_code == 500
        assert "smtp" not in resp.get_data(as_text=True)
        assert db.session.query(User).filter_by(username="alice").count() == 0


# =============================================================================
# PASSWORD RESET
# =============================================================================


class TestPasswordResetApi:

    def _reset_token(self, client, username="viewer"):
        with mail.record_messages() as outbox:
            resp = client.post("/api/forgot-password", json={"username": username})
        assert resp.status_code == 200
        code = _code_from(outbox)

        resp = client.post("/api/verify-code", json={"username": username, "code": code})
        assert resp.status_code == 200
        return resp.json["token"]

    def test_full_reset(self, client, viewer_user):
        old_headers = auth_headers(get_auth_token(client, "viewer"))
        token = self._reset_token(client)

        resp = client.post("/api/reset-password", json={"token": token, "newPassword": NEW_PASSWORD})
        assert resp.status_code == 200

        # Sessions from before the reset are gone
        assert client.get("/dashboard/summary", headers=old_headers).status_code == 401
        assert get_auth_token(client, "viewer", PASSWORD) is None
        assert get_auth_token(client, "viewer", NEW_PASSWORD) is not None

    def test_legacy_code_field_carries_token(self, client, viewer_user):
        token = self._reset_token(client)
        resp = client.post("/api/reset-password", json={"code": token, "new_password": NEW_PASSWORD})
        assert resp.status_code == 200

    def test_numeric_code_cannot_reset_directly(self, client, viewer_user):
        with mail.record_messages() as outbox:
            client.post("/api/forgot-password", json={"identifier": "viewer"})
        code = _code_from(outbox)

        resp = client.post("/api/reset-password", json={"token": code, "newPassword": NEW_PASSWORD})
        assert resp.status_code == 400

    def test_forgot_password_unknown_user(self, client, db_session):
        resp = client.post("/api/forgot-password", json={"username": "ghost"})
        assert resp.status_code == 404

    def test_verify_code_wrong_code(self, client, viewer_user):
        with mail.record_messages() as outbox:
            client.post("/api/forgot-password", json={"username": "viewer"})
        code = _code_from(outbox)
        wrong = "000000" if code != "000000" else "111111"

        resp = client.post("/api/verify-code", json={"username": "viewer", "code": wrong})
        assert resp.status_code == 400

    def test_weak_new_password(self, client, viewer_user):
        token = self._reset_token(client)
        resp = client.post("/api/reset-password", json={"token": token, "newPassword": "short"})
        assert resp.status_code == 400


# =============================================================================
# PASSWORD CHANGE
# =============================================================================


class TestChangePassword:

    def test_change_password(self, client, viewer_headers):
        resp = client.put("/profile/change-password", headers=viewer_headers, json={
            "oldPassword": PASSWORD,
            "newPassword": NEW_PASSWORD,
        })
        assert resp.status_code == 200
        assert get_auth_token(client, "viewer", NEW_PASSWORD) is not None

    def test_wrong_old_password(self, client, viewer_headers):
        resp = client.put("/profile/change-password", headers=viewer_headers, json={
            "oldPassword": "Wrong123!",
            "newPassword": NEW_PASSWORD,
        })
        assert resp.status_code == 401

    def test_requires_auth(self, client, db_session):
        resp = client.put("/profile/change-password", json={"oldPassword": "a", "newPassword": "b"})
        assert resp.status_code == 401
