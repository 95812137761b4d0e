# Overview: Flask API routes for dashboard totals.

from flask import Blueprint, jsonify, current_app

from ..services.reporting_service import dashboard_summary
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


@dashboard_bp.get("/summary")
@require_auth
def summary_route():
    try:
        return jsonify(dashboard_summary()), 200
    except Exception:
        current_app.logger.exception("Dashboard summary query failed")
        return jsonify({"error": "Internal server error"}), 500
