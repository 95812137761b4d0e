# Overview: Flask API routes for the signed-in user's own account.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import UserNotFound
from ..services import auth_service
from ..services.auth_service import PasswordValidationError
from ..services.audit_service import AuditTrail
from ..decorators import require_auth

profile_bp = Blueprint("profile", __name__, url_prefix="/profile")


@profile_bp.put("/change-password")
@require_auth
def change_password_route():
    """Change the caller's password; the current password is required."""
    data = request.get_json(silent=True) or {}
    old_password = data.get("oldPassword")
    new_password = data.get("newPassword")

    if not old_password or not new_password:
        return jsonify({"error": "oldPassword and newPassword required"}), 400

    try:
        user = auth_service.change_password(g.current_user.id, old_password, new_password)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserNotFound as e:
        return jsonify({"error": e.message}), 404
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500

    if user is None:
        return jsonify({"error": "Current password is incorrect"}), 401

    AuditTrail(db.session).append(user.username, "change_password")
    return jsonify({"message": "Password changed"}), 200
