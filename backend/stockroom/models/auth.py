from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z

ROLES = ("admin", "viewer")


class User(db.Model):
    """
    User accounts for authentication and attribution.

    A row with password_hash NULL is a pending registration: a code has been
    issued for the username but not yet redeemed. Such rows cannot log in.

    The verification code column stores an HMAC-SHA256 digest and the reset
    token column a SHA-256 digest, never the plaintext value that was
    emailed or returned to the client.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'viewer')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="viewer", server_default="viewer")

    # At most one pending verification code per user
    email_verification_code = db.Column(db.String(64), nullable=True)
    email_code_expires = db.Column(db.DateTime(timezone=True), nullable=True)

    # Issued by a successful reset-code verification, bound to this user
    reset_token = db.Column(db.String(64), nullable=True, unique=True)
    reset_expires = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_registered(self) -> bool:
        return self.password_hash is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Server-issued bearer session.

    WHY: The caller's role must come from a record the server issued, not
    from a request header. Only the SHA-256 of the token is stored.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index("ix_sessions_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
