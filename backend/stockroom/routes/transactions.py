# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

# backend/stockroom/routes/transactions.py
"""
Stock movement routes.

SECURITY: All routes require authentication.
- Recording a movement requires the admin role
- Listing movements is open to any authenticated user

The operator recorded on a movement is the session's user, never a
client-supplied header.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..errors import ServiceError, StorageFailure
from ..models import StockMovement
from ..repositories.stock_repository import StockRepository
from ..services.audit_service import AuditTrail
from ..services.stock_ledger_service import StockLedger
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_movement,
)
from ..decorators import require_auth, require_role


transactions_bp = Blueprint("transactions", __name__, url_prefix="/transactions")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "type", "quantity", "note"},
    required_on_create={"product_id", "type", "quantity"},
)


def build_stock_ledger() -> StockLedger:
    return StockLedger(StockRepository(db.session), AuditTrail(db.session))


@transactions_bp.post("")
@require_auth
@require_role("admin")
def create_movement_route():
    """
    Record an inbound or outbound stock movement.

    Requires the admin role.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockMovement,
            payload=payload,
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_movement(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        result = build_stock_ledger().apply_movement(
            product_id=patch["product_id"],
            kind=patch["type"],
            quantity=patch["quantity"],
            operator=g.current_user.username,
            note=patch.get("note") or None,
        )
    except StorageFailure:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error", "retryable": True}, 500
    except ServiceError as e:
        return {"error": e.message}, e.status_code

    return {"success": True, **result.to_dict()}, 201


@transactions_bp.get("")
@require_auth
def list_movements_route():
    """List all movements with product names, newest first."""
    limit = request.args.get("limit", type=int)
    if limit is not None:
        limit = max(1, min(limit, 1000))

    try:
        return build_stock_ledger().list_movements(limit=limit), 200
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return {"error": "Internal server error"}, 500
