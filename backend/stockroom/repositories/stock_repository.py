# Overview: Transactional repository for the stock ledger; hides backend-specific locking.

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import Product, StockMovement
from ..services.concurrency import lock_for_update


class StockRepository:
    """
    The only storage surface the stock ledger touches.

    WHY a repository: the ledger must run unchanged against an embedded
    single-writer store (SQLite) and a networked relational store
    (PostgreSQL). Locking and guarded writes live here, not in the ledger.

    The session is injected; one repository instance serves one atomic scope
    at a time.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def begin_atomic(self):
        """
        Run the enclosed block as one unit of work.

        Commits on normal exit, rolls back on any exception (business-rule
        abort or storage error) and re-raises. Row locks taken inside are
        released on both paths.
        """
        # Commits whatever the caller left pending so the scope starts on a
        # fresh transaction; a no-op when nothing is pending
        self.session.commit()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def get_product_for_update(self, product_id: int) -> Product | None:
        stmt = lock_for_update(select(Product).where(Product.id == product_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def update_stock(self, product_id: int, delta: int) -> int | None:
        """
        Apply delta to stock only if the result stays non-negative.

        Returns the new stock, or None when the guard rejected the change.
        The guard is evaluated by the database under its write lock, so two
        concurrent decrements can never both pass it.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock + delta >= 0)
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            return None
        return self.session.execute(
            select(Product.stock).where(Product.id == product_id)
        ).scalar_one()

    def insert_movement(
        self,
        *,
        product_id: int,
        kind: str,
        quantity: int,
        note: str | None,
        operator: str | None,
        timestamp: datetime,
    ) -> StockMovement:
        movement = StockMovement(
            product_id=product_id,
            type=kind,
            quantity=quantity,
            note=note,
            operator=operator,
            timestamp=timestamp,
        )
        self.session.add(movement)
        self.session.flush()  # assigns movement.id without committing
        return movement

    def list_movements(self, limit: int | None = None):
        stmt = (
            select(StockMovement, Product.name)
            .join(Product, StockMovement.product_id == Product.id)
            .order_by(StockMovement.timestamp.desc(), StockMovement.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.execute(stmt).all()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
