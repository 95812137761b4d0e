# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..errors import AccessDenied, UserNotFound, ValidationError
from ..services import user_service
from ..services.audit_service import AuditTrail
from ..decorators import require_auth, require_role

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.get("")
@require_auth
@require_role("admin")
def list_users():
    """List registered users (pending registrations are omitted)."""
    return jsonify(user_service.list_users()), 200


@users_bp.put("/<int:user_id>/role")
@require_auth
@require_role("admin")
def update_role_route(user_id: int):
    """
    Change a user's role.

    403 when demoting yourself or the last remaining admin.
    """
    data = request.get_json(silent=True) or {}
    role = data.get("role")

    try:
        user, previous_role = user_service.update_role(
            target_user_id=user_id,
            new_role=role,
            acting_user=g.current_user,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserNotFound as e:
        return jsonify({"error": e.message}), 404
    except AccessDenied as e:
        return jsonify({"error": e.message}), 403

    AuditTrail(db.session).append(g.current_user.username, "update_permissions", {
        "username": user.username,
        "previousRole": previous_role,
        "newRole": user.role,
    })
    return jsonify({"success": True, "user": user.to_dict()}), 200
