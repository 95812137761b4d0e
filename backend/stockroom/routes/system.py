# backend/stockroom/routes/system.py
"""
System liveness and health endpoints.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, StockMovement, User
from ..services.user_service import count_admins
from stockroom.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        movement_count = db.session.query(StockMovement).count()
        user_count = db.session.query(User).filter(User.password_hash.isnot(None)).count()
        admin_count = count_admins()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if admin_count > 0 else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "transactions": movement_count,
                "users": user_count,
                "admins": admin_count,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/ping")
def ping():
    return "pong", 200, {"Content-Type": "text/plain; charset=utf-8"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy, or degraded (no admin account configured yet)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }, http_status
