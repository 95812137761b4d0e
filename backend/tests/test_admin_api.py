"""
User administration, audit log, dashboard and system endpoint tests.
"""

from datetime import timedelta

import pytest

from stockroom.errors import AccessDenied
from stockroom.extensions import db
from stockroom.models import AuditLogEntry, StockMovement, User
from stockroom.services import user_service
from stockroom.services.auth_service import create_user
from stockroom.services.reporting_service import dashboard_summary
from stockroom.time_utils import utcnow

from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# USERS / ROLES
# =============================================================================


class TestUsers:

    def test_list_users_admin_only(self, client, admin_headers, viewer_headers):
        resp = client.get("/users", headers=admin_headers)
        assert resp.status_code == 200
        assert [u["username"] for u in resp.json] == ["admin", "viewer"]
        assert all("password_hash" not in u for u in resp.json)

        assert client.get("/users", headers=viewer_headers).status_code == 403

    def test_pending_registrations_are_not_listed(self, client, admin_headers):
        db.session.add(User(username="pending", email="p@example.com"))
        db.session.commit()

        resp = client.get("/users", headers=admin_headers)
        assert "pending" not in [u["username"] for u in resp.json]

    def test_promote_viewer(self, client, admin_headers, viewer_user):
        resp = client.put(f"/users/{viewer_user.id}/role", headers=admin_headers, json={"role": "admin"})

        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "admin"

        entry = db.session.query(AuditLogEntry).filter_by(action="update_permissions").one()
        assert entry.to_dict()["details"] == {
            "username": "viewer",
            "previousRole": "viewer",
            "newRole": "admin",
        }

    def test_promoted_role_applies_to_existing_session(self, client, admin_headers, viewer_user, viewer_headers):
        assert client.get("/users", headers=viewer_headers).status_code == 403
        client.put(f"/users/{viewer_user.id}/role", headers=admin_headers, json={"role": "admin"})
        assert client.get("/users", headers=viewer_headers).status_code == 200

    def test_self_demotion_refused(self, client, admin_headers, admin_user):
        resp = client.put(f"/users/{admin_user.id}/role", headers=admin_headers, json={"role": "viewer"})
        assert resp.status_code == 403
        db.session.expire_all()
        assert db.session.get(User, admin_user.id).role == "admin"

    def test_demote_other_admin_when_two_exist(self, client, admin_headers, db_session):
        second = create_user("second", "second@example.com", PASSWORD, role="admin")

        resp = client.put(f"/users/{second.id}/role", headers=admin_headers, json={"role": "viewer"})
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "viewer"

    def test_invalid_role(self, client, admin_headers, viewer_user):
        resp = client.put(f"/users/{viewer_user.id}/role", headers=admin_headers, json={"role": "owner"})
        assert resp.status_code == 400

    def test_unknown_user(self, client, admin_headers):
        resp = client.put("/users/9999/role", headers=admin_headers, json={"role": "viewer"})
        assert resp.status_code == 404

    def test_viewer_cannot_change_roles(self, client, viewer_headers, viewer_user):
        resp = client.put(f"/users/{viewer_user.id}/role", headers=viewer_headers, json={"role": "admin"})
        assert resp.status_code == 403

    def test_last_admin_cannot_be_demoted(self, admin_user, viewer_user):
        with pytest.raises(AccessDenied):
            user_service.update_role(target_user_id=admin_user.id, new_role="viewer", acting_user=viewer_user)
        assert user_service.count_admins() == 1


# =============================================================================
# AUDIT LOG
# =============================================================================


class TestLogs:

    def test_logs_newest_first(self, client, admin_headers, product):
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 1,
        })

        resp = client.get("/logs", headers=admin_headers)
        assert resp.status_code == 200
        assert [e["action"] for e in resp.json] == ["add_transaction", "login_success"]

    def test_logs_limit(self, client, admin_headers):
        resp = client.get("/logs?limit=1", headers=admin_headers)
        assert len(resp.json) == 1

    def test_viewer_cannot_read_logs(self, client, viewer_headers):
        assert client.get("/logs", headers=viewer_headers).status_code == 403


# =============================================================================
# DASHBOARD
# =============================================================================


class TestDashboard:

    def test_summary(self, client, admin_headers, product):
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "in", "quantity": 4,
        })
        client.post("/transactions", headers=admin_headers, json={
            "product_id": product.id, "type": "out", "quantity": 3,
        })

        resp = client.get("/dashboard/summary", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json == {
            "productCount": 1,
            "totalStock": 11,
            "todayTxnCount": 2,
            "todayStockIn": 4,
            "todayStockOut": 3,
        }

    def test_yesterday_is_not_today(self, product):
        yesterday = utcnow() - timedelta(days=1)
        db.session.add(StockMovement(product_id=product.id, type="in", quantity=2, timestamp=yesterday))
        db.session.commit()

        summary = dashboard_summary()
        assert summary["todayTxnCount"] == 0
        assert summary["todayStockIn"] == 0


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_ping(self, client):
        resp = client.get("/ping")
        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "pong"

    def test_health_degraded_without_admin(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"

    def test_health_healthy(self, client, admin_user):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["admins"] == 1

    def test_cors_allowed_origin(self, client):
        resp = client.get("/ping", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        resp = client.get("/ping", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
