# Overview: Service-layer read models for the dashboard summary.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement
from stockroom.time_utils import utcnow


def dashboard_summary(now=None) -> dict:
    """
    Catalog and movement totals; "today" is the current UTC calendar day.
    """
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    product_count = db.session.query(func.count(Product.id)).scalar() or 0
    total_stock = db.session.query(func.coalesce(func.sum(Product.stock), 0)).scalar() or 0

    today = db.session.query(StockMovement).filter(
        StockMovement.timestamp >= day_start,
        StockMovement.timestamp < day_end,
    )
    today_count = today.count()

    def _sum_today(kind: str) -> int:
        return int(
            db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
            .filter(
                StockMovement.type == kind,
                StockMovement.timestamp >= day_start,
                StockMovement.timestamp < day_end,
            )
            .scalar()
            or 0
        )

    return {
        "productCount": int(product_count),
        "totalStock": int(total_stock),
        "todayTxnCount": int(today_count),
        "todayStockIn": _sum_today("in"),
        "todayStockOut": _sum_today("out"),
    }
