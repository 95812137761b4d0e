# Overview: Service-layer operations for stock movements; atomic check-then-write with audit after commit.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import InsufficientStock, ProductNotFound, StorageFailure, ValidationError
from ..models import MOVEMENT_KINDS, StockMovement
from ..repositories.stock_repository import StockRepository
from .audit_service import AuditResult, AuditTrail
from .concurrency import run_with_retry
from stockroom.time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Product.stock is never negative at any committed state.
- An 'out' movement is persisted only if the resulting stock is >= 0;
  otherwise neither a movement row nor a stock change exists.
- Each committed movement corresponds 1:1 with a stock delta.
- The read-check-write-insert sequence runs inside one atomic scope that
  serializes callers per product. Different products never contend.
- The audit entry is written after commit and can never undo or alter the
  movement's outcome.
"""

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement
    stock_after: int
    audit: AuditResult

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.movement.id,
            "transaction": self.movement.to_dict(),
            "stock": self.stock_after,
        }


def _validate_movement(kind: Any, quantity: Any, note: Any) -> None:
    if kind not in MOVEMENT_KINDS:
        raise ValidationError("type must be 'in' or 'out'")
    # bool is an int subclass; reject it explicitly
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if note is not None:
        if not isinstance(note, str):
            raise ValidationError("note must be a string")
        if len(note) > MAX_NOTE_LENGTH:
            raise ValidationError(f"note exceeds max length {MAX_NOTE_LENGTH}")


class StockLedger:
    """
    Applies stock movements to products.

    Storage and audit collaborators are injected so the ledger never reaches
    for a process-wide session.
    """

    def __init__(
        self,
        repository: StockRepository,
        audit: AuditTrail,
        *,
        clock: Callable[[], Any] = utcnow,
        retry_attempts: int = 3,
    ):
        self.repository = repository
        self.audit = audit
        self.clock = clock
        self.retry_attempts = retry_attempts

    def apply_movement(
        self,
        product_id: int,
        kind: str,
        quantity: int,
        operator: str | None,
        note: str | None = None,
    ) -> MovementResult:
        """
        Record one inbound/outbound movement and adjust stock with it.

        Raises ValidationError, ProductNotFound, InsufficientStock, or
        StorageFailure. A StorageFailure means nothing was applied and the
        whole call may be retried.
        """
        _validate_movement(kind, quantity, note)
        delta = quantity if kind == "in" else -quantity

        def _op():
            with self.repository.begin_atomic() as repo:
                product = repo.get_product_for_update(product_id)
                if product is None:
                    raise ProductNotFound()

                stock_after = repo.update_stock(product.id, delta)
                if stock_after is None:
                    raise InsufficientStock(product.id, quantity, product.stock)

                movement = repo.insert_movement(
                    product_id=product.id,
                    kind=kind,
                    quantity=quantity,
                    note=note,
                    operator=operator,
                    timestamp=self.clock(),
                )
                audit_details = {
                    "transaction_id": movement.id,
                    "product_id": product.id,
                    "productName": product.name,
                    "type": kind,
                    "quantity": quantity,
                }
            return movement, stock_after, audit_details

        try:
            movement, stock_after, audit_details = run_with_retry(
                _op,
                session=self.repository.session,
                attempts=self.retry_attempts,
            )
        except SQLAlchemyError as exc:
            logger.exception("Stock movement failed in storage for product_id=%s", product_id)
            raise StorageFailure() from exc

        # Lock released by the commit above; the audit write is on its own
        audit = self.audit.append(operator, "add_transaction", audit_details)
        if not audit.recorded:
            logger.warning("Movement %s committed without audit entry", movement.id)

        return MovementResult(movement=movement, stock_after=stock_after, audit=audit)

    def list_movements(self, limit: int | None = None) -> list[dict]:
        """All movements joined with product name, newest first."""
        rows = self.repository.list_movements(limit=limit)
        items = []
        for movement, product_name in rows:
            item = movement.to_dict()
            item["product_name"] = product_name
            items.append(item)
        return items
