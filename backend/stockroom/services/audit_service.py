# Overview: Service-layer operations for the audit trail; append-only, best-effort writes.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import AuditLogEntry
from stockroom.time_utils import utcnow
"""
Audit Trail Invariants (authoritative)

- Append-only: entries are never updated or deleted.
- Non-authoritative: nothing reads the trail to decide primary state.
- Best-effort: a failed append is logged and reported through AuditResult,
  never raised into the operation it accompanies.
- Ordering is timestamp DESC with ties broken by id DESC.
"""

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


@dataclass(frozen=True)
class AuditResult:
    """Outcome of an append; consumed for observability only."""
    recorded: bool
    entry_id: int | None = None
    error: str | None = None


class AuditTrail:
    def __init__(self, session: Session, *, clock: Callable[[], Any] = utcnow):
        self.session = session
        self.clock = clock

    def append(self, username: str | None, action: str, details: dict | None = None) -> AuditResult:
        """
        Persist one immutable entry in its own commit.

        Must be called outside any open atomic scope of the caller: the commit
        here would otherwise close the caller's transaction early.
        """
        try:
            entry = AuditLogEntry(
                username=username or "unknown",
                action=action,
                details=json.dumps(details, default=str) if details else None,
                timestamp=self.clock(),
            )
            self.session.add(entry)
            self.session.commit()
            return AuditResult(recorded=True, entry_id=entry.id)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            self.session.rollback()
            logger.exception("Failed to write audit entry action=%s username=%s", action, username)
            return AuditResult(recorded=False, error=exc.__class__.__name__)

    def list_entries(self, limit: int | None = None) -> list[AuditLogEntry]:
        if limit is None:
            limit = DEFAULT_LIST_LIMIT
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        stmt = (
            select(AuditLogEntry)
            .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())
