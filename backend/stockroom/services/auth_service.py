# Overview: Password hashing and credential checks for registered accounts.

"""
Credentials

Every movement and catalog edit is attributed to a signed-in account, so
passwords are bcrypt-hashed (BCRYPT_ROUNDS, default 12) and must pass
PASSWORD_RULES before they are stored.

A users row without a password_hash is a pending registration and never
authenticates. Bearer sessions live in session_service.py.
"""

import bcrypt
import re
from flask import current_app
from sqlalchemy import or_
from ..extensions import db
from ..errors import UserNotFound, ValidationError
from ..models import User
from stockroom.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


PASSWORD_MIN_LENGTH = 8

# (pattern, what is missing)
PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"\d", "a digit"),
    (r"[!@#$%^&*(),.'\":{}|<>]", "a special character"),
)


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError unless every rule in PASSWORD_RULES holds."""
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    for pattern, label in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise PasswordValidationError(f"Password must contain at least {label}")


def _bcrypt_rounds() -> int:
    try:
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    except RuntimeError:
        # Outside an application context (e.g. scripts)
        return 12


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in storage
        return False


def create_user(username: str, email: str | None, password: str, role: str = "viewer") -> User:
    """
    Create a registered user directly (CLI / bootstrap path).

    Self-service accounts go through the verification flow instead.

    Raises:
        ValidationError: If username exists or role is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    if role not in ("admin", "viewer"):
        raise ValidationError("role must be 'admin' or 'viewer'")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing and existing.is_registered:
        raise ValidationError("Username already exists")

    password_hash = hash_password(password)

    user = existing or User(username=username)
    user.email = email
    user.password_hash = password_hash
    user.role = role
    user.email_verification_code = None
    user.email_code_expires = None

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        or_(User.username == username, User.email == username),
        User.password_hash.isnot(None),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def change_password(user_id: int, old_password: str, new_password: str) -> User | None:
    """
    Change a password after re-checking the current one.

    Returns None when the old password does not match.
    """
    user = db.session.get(User, user_id)
    if user is None or not user.is_registered:
        raise UserNotFound()

    if not verify_password(old_password, user.password_hash):
        return None

    user.password_hash = hash_password(new_password)
    db.session.commit()
    return user
