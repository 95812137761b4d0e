# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.audit_service import AuditTrail, DEFAULT_LIST_LIMIT
from ..decorators import require_auth, require_role

logs_bp = Blueprint("logs", __name__, url_prefix="/logs")


@logs_bp.get("")
@require_auth
@require_role("admin")
def list_logs_route():
    """Most recent audit entries, newest first. limit defaults to 100, max 500."""
    limit = request.args.get("limit", default=DEFAULT_LIST_LIMIT, type=int)

    try:
        entries = AuditTrail(db.session).list_entries(limit=limit)
    except Exception:
        current_app.logger.exception("Failed to list audit entries")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify([e.to_dict() for e in entries]), 200
