# Overview: Security event sinks; fire-and-forget delivery of gate and lifecycle audit events.

"""
Audit Sinks

WHY: Gates and lifecycle transitions describe every weakened control as a
SecurityEventRecord. Sinks deliver those records to logs and to the
security_events table.

DESIGN PRINCIPLES:
- Fire-and-forget: a sink failure is logged and never reaches the caller
- Emission happens after the primary operation commits
- Sinks are shared across threads; none keeps per-request state
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SecurityEvent
from ..security import SecurityEventRecord


security_logger = logging.getLogger("vulnyoga.security")
logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def emit(self, event: SecurityEventRecord) -> None:
        ...

    def emit_all(self, events: Iterable[SecurityEventRecord]) -> None:
        ...


class _BaseSink:
    def emit(self, event: SecurityEventRecord) -> None:
        raise NotImplementedError

    def emit_all(self, events: Iterable[SecurityEventRecord]) -> None:
        for event in events:
            self.emit(event)


class LoggingAuditSink(_BaseSink):
    """Writes each event as a warning on the vulnyoga.security logger."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or security_logger

    def emit(self, event: SecurityEventRecord) -> None:
        try:
            self.log.warning(
                "%s principal=%s target=%s %s",
                event.category,
                event.principal_id,
                event.target_id,
                event.detail,
            )
        except Exception:
            logger.exception("Failed to log security event")


class DatabaseAuditSink(_BaseSink):
    """
    Appends events to security_events.

    Must run inside an app context, after the caller's own commit, since it
    commits the shared session.
    """

    def emit(self, event: SecurityEventRecord) -> None:
        try:
            db.session.add(SecurityEvent(
                principal_id=event.principal_id,
                category=event.category,
                target_id=None if event.target_id is None else str(event.target_id),
                detail=event.detail,
                occurred_at=event.timestamp,
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to persist security event %s", event.category)


class RecordingAuditSink(_BaseSink):
    """In-memory sink; used by tests and the CLI dry runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[SecurityEventRecord] = []

    def emit(self, event: SecurityEventRecord) -> None:
        with self._lock:
            self.events.append(event)

    def by_category(self, category: str) -> list[SecurityEventRecord]:
        with self._lock:
            return [e for e in self.events if e.category == category]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


class CompositeAuditSink(_BaseSink):
    """Fans each event out to every child sink; one failing child does not stop the rest."""

    def __init__(self, *sinks):
        self.sinks = list(sinks)

    def emit(self, event: SecurityEventRecord) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception("Audit sink %s failed", sink.__class__.__name__)
