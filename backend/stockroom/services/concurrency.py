# Overview: Retry and row-locking helpers shared by services that run atomic scopes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Callers that must also be correct on SQLite pair this with a guarded
    UPDATE (see StockRepository.update_stock).
    """
    return query.with_for_update()


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry so every attempt starts from a clean transaction.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after transient storage error (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
