"""
System log sink: best-effort audit trail of operator actions.

Ledger services record entries while they work and flush them only after
their own transaction has committed. A flush runs in its own transaction;
when it fails the log write is rolled back, the entries are put back in the
buffer for the next flush, and the ledger mutation they describe stays
committed. Entries pushed out of a full buffer are counted as dead letters
so a logging outage stays visible in /api/health.
"""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SystemLog
from creditdesk.time_utils import utcnow


@dataclass
class PendingLog:
    action: str
    entity_type: str
    entity_id: int | None
    description: str
    user_id: str | None = None
    old_values: str | None = None
    new_values: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_model(self) -> SystemLog:
        return SystemLog(
            user_id=self.user_id,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            description=self.description[:512],
            old_values=self.old_values,
            new_values=self.new_values,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            created_at=self.created_at,
        )


def _dump(values: Any) -> str | None:
    if values is None:
        return None
    return json.dumps(values, default=str, sort_keys=True)


class SystemLogWriter:
    def __init__(self, max_buffer: int = 500):
        self.max_buffer = max_buffer
        self.enabled = True
        self.dead_letter_count = 0
        self.failed_flush_count = 0
        self._buffer: deque[PendingLog] = deque()
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.enabled = app.config.get("SYSTEM_LOG_ENABLED", True)
        self.max_buffer = app.config.get("SYSTEM_LOG_BUFFER_SIZE", self.max_buffer)
        app.extensions["system_log"] = self

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def record(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: int | None,
        description: str,
        user_id: str | None = None,
        old_values: Any = None,
        new_values: Any = None,
    ) -> None:
        if not self.enabled:
            return

        entry = PendingLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            user_id=user_id,
            old_values=_dump(old_values),
            new_values=_dump(new_values),
        )
        if has_request_context():
            entry.ip_address = request.remote_addr
            entry.user_agent = (request.headers.get("User-Agent") or "")[:512] or None

        with self._lock:
            self._buffer.append(entry)
            self._trim_locked()

    def _trim_locked(self) -> None:
        while len(self._buffer) > self.max_buffer:
            self._buffer.popleft()
            self.dead_letter_count += 1

    def flush(self) -> int:
        """
        Persist buffered entries. Returns how many were written.

        Never raises on storage failures.
        """
        with self._lock:
            batch = list(self._buffer)
            self._buffer.clear()
        if not batch:
            return 0

        try:
            db.session.add_all([entry.to_model() for entry in batch])
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            self.failed_flush_count += 1
            current_app.logger.exception("System log flush failed; %s entries re-queued", len(batch))
            with self._lock:
                self._buffer.extendleft(reversed(batch))
                self._trim_locked()
            return 0
        return len(batch)

    def log(self, **kwargs) -> int:
        """Record one entry and flush immediately (call only after the ledger commit)."""
        self.record(**kwargs)
        return self.flush()

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "pending": self.pending,
            "dead_letter_count": self.dead_letter_count,
            "failed_flush_count": self.failed_flush_count,
        }


writer = SystemLogWriter()


def list_system_logs(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[SystemLog]:
    q = db.session.query(SystemLog)
    if entity_type:
        q = q.filter(SystemLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(SystemLog.entity_id == entity_id)
    if action:
        q = q.filter(SystemLog.action == action)
    return q.order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).limit(limit).all()
