# Overview: Service-layer operations for user administration (listing, role changes).

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import AccessDenied, UserNotFound, ValidationError
from ..models import ROLES, User
from .concurrency import lock_for_update


def list_users() -> list[dict]:
    users = (
        db.session.query(User)
        .filter(User.password_hash.isnot(None))
        .order_by(User.username.asc())
        .all()
    )
    return [u.to_dict() for u in users]


def update_role(*, target_user_id: int, new_role: str, acting_user: User) -> tuple[User, str]:
    """
    Change a registered user's role.

    Refuses to demote the acting admin's own account, and refuses any change
    that would leave the system without an admin. The admin rows are locked
    while counting so two concurrent demotions cannot both pass.

    Returns (user, previous_role).
    """
    if new_role not in ROLES:
        raise ValidationError("role must be 'admin' or 'viewer'")

    target = lock_for_update(
        db.session.query(User).filter(User.id == target_user_id, User.password_hash.isnot(None))
    ).first()
    if target is None:
        raise UserNotFound()

    previous_role = target.role

    if target.id == acting_user.id and new_role != "admin":
        db.session.rollback()
        raise AccessDenied("Cannot remove admin role from your own account")

    if previous_role == "admin" and new_role != "admin":
        admin_ids = lock_for_update(
            db.session.query(User.id).filter(User.role == "admin", User.password_hash.isnot(None))
        ).all()
        if len(admin_ids) <= 1:
            db.session.rollback()
            raise AccessDenied("At least one admin account must remain")

    target.role = new_role
    db.session.commit()
    return target, previous_role


def count_admins() -> int:
    return db.session.query(func.count(User.id)).filter(
        User.role == "admin", User.password_hash.isnot(None)
    ).scalar() or 0
