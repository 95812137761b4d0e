# Overview: Service-layer operations for time-boxed verification codes (registration and password reset).

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    CodeMismatchOrExpired,
    ConflictError,
    DeliveryFailure,
    StorageFailure,
    UserNotFound,
    ValidationError,
)
from ..models import SessionToken, User
from .audit_service import AuditTrail
from .auth_service import hash_password
from .mail_service import registration_code_message, reset_code_message
from stockroom.time_utils import utcnow
"""
Verification Code State Machine (authoritative)

Per user: NoPendingCode -> CodePending(code, expires_at) -> NoPendingCode

- Issuing a code supersedes any pending one (last write wins).
- A code is persisted only after the delivery collaborator accepted it.
- A code is valid only while now < expires_at; expiry is absolute.
- Redemption is a single guarded UPDATE that both clears the code and
  applies the dependent change, so a code can succeed at most once.
- Password reset is two-step: the code is exchanged for an opaque reset
  token bound to the user, and only that token can set the new password.
"""

logger = logging.getLogger(__name__)

PURPOSE_REGISTRATION = "registration"
PURPOSE_PASSWORD_RESET = "password_reset"

CODE_DIGITS = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def generate_code() -> str:
    """Fixed-width numeric code from a CSPRNG (leading zeros kept)."""
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


def _require_text(value: Any, field: str, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value


def _require_email(value: Any) -> str:
    email = _require_text(value, "email")
    if not _EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address")
    return email


@dataclass(frozen=True)
class IssuedCode:
    """Returned to callers; never carries the code value."""
    username: str
    email: str
    purpose: str
    expires_at: datetime


@dataclass(frozen=True)
class ResetGrant:
    username: str
    token: str
    expires_at: datetime


class VerificationFlow:
    """
    Issues and redeems verification codes against the users table.

    The session, delivery collaborator and audit trail are injected.
    """

    def __init__(
        self,
        session: Session,
        delivery,
        audit: AuditTrail,
        *,
        secret_key: str,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] = generate_code,
        registration_ttl_seconds: int = 180,
        reset_ttl_seconds: int = 180,
        reset_token_ttl_seconds: int = 600,
    ):
        self.session = session
        self.delivery = delivery
        self.audit = audit
        self.secret_key = secret_key.encode("utf-8")
        self.clock = clock
        self.code_generator = code_generator
        self.ttls = {
            PURPOSE_REGISTRATION: timedelta(seconds=registration_ttl_seconds),
            PURPOSE_PASSWORD_RESET: timedelta(seconds=reset_ttl_seconds),
        }
        self.reset_token_ttl = timedelta(seconds=reset_token_ttl_seconds)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _code_digest(self, purpose: str, code: str) -> str:
        # Keyed so a leaked users table does not reveal 6-digit codes by enumeration
        msg = f"{purpose}:{code}".encode("utf-8")
        return hmac.new(self.secret_key, msg, hashlib.sha256).hexdigest()

    @staticmethod
    def _token_digest(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @contextmanager
    def _write_scope(self, action: str):
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Verification flow storage failure during %s", action)
            raise StorageFailure() from exc
        except Exception:
            self.session.rollback()
            raise

    def _deliver(self, recipient: str, subject: str, body: str) -> None:
        if not self.delivery.send(recipient, subject, body):
            raise DeliveryFailure()

    def _find_registered(self, identifier: str) -> User | None:
        user = self.session.execute(
            select(User).where(User.username == identifier, User.password_hash.isnot(None))
        ).scalar_one_or_none()
        if user is not None:
            return user
        return self.session.execute(
            select(User)
            .where(User.email == identifier, User.password_hash.isnot(None))
            .order_by(User.id.asc())
            .limit(1)
        ).scalar_one_or_none()

    def _insert_pending(self, username: str, email: str, digest: str, expires_at: datetime) -> bool:
        """Create the pending-registration row; False if the username was taken meanwhile."""
        try:
            self.session.add(User(
                username=username,
                email=email,
                role="viewer",
                email_verification_code=digest,
                email_code_expires=expires_at,
            ))
            self.session.flush()
            return True
        except IntegrityError:
            # Nothing else is staged in this scope, so a full rollback is safe
            self.session.rollback()
            return False

    # ------------------------------------------------------------------
    # issuance
    # ------------------------------------------------------------------

    def issue_registration_code(self, username: str, email: str) -> IssuedCode:
        """
        Email a registration code and record it as the pending code.

        Raises ConflictError if the username belongs to a registered account,
        DeliveryFailure if the email could not be sent (nothing persisted).
        """
        username = _require_text(username, "username", max_length=64)
        email = _require_email(email)

        existing = self.session.execute(
            select(User).where(User.username == username)
        ).scalar_one_or_none()
        if existing is not None and existing.is_registered:
            raise ConflictError("Username already exists")

        code = self.code_generator()
        expires_at = self.clock() + self.ttls[PURPOSE_REGISTRATION]
        subject, body = registration_code_message(
            username, code, int(self.ttls[PURPOSE_REGISTRATION].total_seconds())
        )
        self._deliver(email, subject, body)

        digest = self._code_digest(PURPOSE_REGISTRATION, code)
        with self._write_scope("issue_registration_code"):
            created = False
            if existing is None:
                created = self._insert_pending(username, email, digest, expires_at)
            if not created:
                result = self.session.execute(
                    update(User)
                    .where(User.username == username, User.password_hash.is_(None))
                    .values(email=email, email_verification_code=digest, email_code_expires=expires_at)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError("Username already exists")

        self.audit.append(username, "send_register_code", {"email": email})
        return IssuedCode(username=username, email=email, purpose=PURPOSE_REGISTRATION, expires_at=expires_at)

    def issue_reset_code(self, identifier: str) -> IssuedCode:
        """
        Email a password reset code to the account's address on file.

        identifier may be a username or an email address.
        """
        identifier = _require_text(identifier, "identifier")

        user = self._find_registered(identifier)
        if user is None:
            raise UserNotFound()
        if not user.email:
            raise ValidationError("Account has no email address on file")

        user_id, username, email = user.id, user.username, user.email
        code = self.code_generator()
        expires_at = self.clock() + self.ttls[PURPOSE_PASSWORD_RESET]
        subject, body = reset_code_message(
            username, code, int(self.ttls[PURPOSE_PASSWORD_RESET].total_seconds())
        )
        self._deliver(email, subject, body)

        with self._write_scope("issue_reset_code"):
            self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    email_verification_code=self._code_digest(PURPOSE_PASSWORD_RESET, code),
                    email_code_expires=expires_at,
                )
                .execution_options(synchronize_session=False)
            )

        self.audit.append(username, "send_verification_code", {"email": email})
        return IssuedCode(username=username, email=email, purpose=PURPOSE_PASSWORD_RESET, expires_at=expires_at)

    # ------------------------------------------------------------------
    # redemption
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str, code: str) -> User:
        """
        Redeem a registration code and set the account password.

        The password is checked before the code is touched, so a weak
        password never burns a valid code.
        """
        username = _require_text(username, "username", max_length=64)
        email = _require_email(email)
        code = _require_text(code, "code", max_length=CODE_DIGITS)
        password_hash = hash_password(password)

        now = self.clock()
        with self._write_scope("register"):
            result = self.session.execute(
                update(User)
                .where(
                    User.username == username,
                    User.email == email,
                    User.password_hash.is_(None),
                    User.email_verification_code == self._code_digest(PURPOSE_REGISTRATION, code),
                    User.email_code_expires > now,
                )
                .values(password_hash=password_hash, email_verification_code=None, email_code_expires=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise CodeMismatchOrExpired()

        user = self.session.execute(select(User).where(User.username == username)).scalar_one()
        self.audit.append(username, "register_user", {"email": email})
        return user

    def verify_reset_code(self, username: str, code: str) -> ResetGrant:
        """
        Exchange a reset code for a short-lived reset token bound to the user.

        The code is cleared in the same UPDATE that stores the token digest.
        """
        username = _require_text(username, "username", max_length=64)
        code = _require_text(code, "code", max_length=CODE_DIGITS)

        now = self.clock()
        token = secrets.token_urlsafe(32)
        token_expires = now + self.reset_token_ttl

        with self._write_scope("verify_reset_code"):
            result = self.session.execute(
                update(User)
                .where(
                    User.username == username,
                    User.password_hash.isnot(None),
                    User.email_verification_code == self._code_digest(PURPOSE_PASSWORD_RESET, code),
                    User.email_code_expires > now,
                )
                .values(
                    email_verification_code=None,
                    email_code_expires=None,
                    reset_token=self._token_digest(token),
                    reset_expires=token_expires,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise CodeMismatchOrExpired()

        self.audit.append(username, "verify_reset_code")
        return ResetGrant(username=username, token=token, expires_at=token_expires)

    def reset_password(self, token: str, new_password: str) -> User:
        """
        Set a new password using a reset token from verify_reset_code.

        Consumes the token and revokes every open session of the user in the
        same commit.
        """
        token = _require_text(token, "token", max_length=128)
        password_hash = hash_password(new_password)
        digest = self._token_digest(token)

        now = self.clock()
        with self._write_scope("reset_password"):
            user = self.session.execute(
                select(User).where(User.reset_token == digest, User.reset_expires > now)
            ).scalar_one_or_none()
            if user is None:
                raise CodeMismatchOrExpired()
            user_id, username = user.id, user.username

            result = self.session.execute(
                update(User)
                .where(User.id == user_id, User.reset_token == digest, User.reset_expires > now)
                .values(password_hash=password_hash, reset_token=None, reset_expires=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise CodeMismatchOrExpired()

            self.session.execute(
                update(SessionToken)
                .where(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
                .values(is_revoked=True, revoked_at=now, revoked_reason="Password reset")
                .execution_options(synchronize_session=False)
            )

        self.audit.append(username, "reset_password")
        return self.session.get(User, user_id)
