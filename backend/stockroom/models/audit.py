from __future__ import annotations

import json

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow


class AuditLogEntry(db.Model):
    """
    Record of a user action for observability.

    IMMUTABLE: Never update or delete. Append-only; never a source of
    primary state. Ordered by timestamp, ties broken by id.
    """
    __tablename__ = "logs"
    __table_args__ = (
        db.Index("ix_logs_timestamp_id", "timestamp", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)

    # JSON-encoded, opaque to the application
    details = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "action": self.action,
            "details": json.loads(self.details) if self.details else None,
            "timestamp": to_utc_z(self.timestamp),
        }
