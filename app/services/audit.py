# ==== AUDIT LOG SERVICE ==== #

"""
Audit trail for ledger, lock pointer and rule mutations.

Events are collected while a unit of work runs and emitted only after it
commits. Emission is best effort: a failing sink is logged and counted, and
the primary operation still succeeds.
"""

import datetime as dt
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.observability.logging import get_logger
from app.observability.metrics import audit_events_total, audit_failures_total
from app.storage.db import get_session_factory
from app.storage.models import AuditLog


logger = get_logger(__name__)


class AuditAction(str, Enum):
    """Kind of row change being audited."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def jsonable(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Render dates and decimals as strings so payloads fit a JSON column."""
    if data is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, (dt.date, dt.datetime)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return {key: convert(item) for key, item in value.items()}
        return value

    return convert(data)


@dataclass(frozen=True)
class AuditEvent:
    """Before/after payload for one row change."""

    tenant_id: Optional[int]
    table_name: str
    record_id: Optional[int]
    action: AuditAction
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    changed_by: Optional[int] = None
    changed_at: dt.datetime = field(default_factory=dt.datetime.utcnow)


class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    async def emit(self, event: AuditEvent) -> None:
        """Persist or forward one event."""


class SqlAuditSink(AuditSink):
    """Writes events to ``audit_logs`` in a session of their own."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    async def emit(self, event: AuditEvent) -> None:
        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            async with session.begin():
                session.add(AuditLog(
                    tenant_id=event.tenant_id,
                    table_name=event.table_name,
                    record_id=event.record_id,
                    action=event.action.value,
                    old_data=jsonable(event.old_data),
                    new_data=jsonable(event.new_data),
                    changed_by=event.changed_by,
                    changed_at=event.changed_at,
                ))


class AuditLogService:
    """Best-effort audit emission."""

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or SqlAuditSink()

    async def write(self, events: Iterable[AuditEvent]) -> int:
        """
        Emit events in order, swallowing sink failures.

        Args:
            events: Events collected during a committed unit of work

        Returns:
            int: Number of events emitted successfully
        """
        emitted = 0
        for event in events:
            try:
                await self.sink.emit(event)
            except Exception as e:
                audit_failures_total.labels(
                    table=event.table_name,
                    error_type=type(e).__name__
                ).inc()
                logger.exception(
                    "Audit emission failed",
                    tenant_id=event.tenant_id,
                    table_name=event.table_name,
                    record_id=event.record_id,
                    action=event.action.value,
                )
                continue

            audit_events_total.labels(table=event.table_name, action=event.action.value).inc()
            emitted += 1
        return emitted


class AuditTrail:
    """Collects events during a unit of work for emission after commit."""

    def __init__(self, tenant_id: int, user_id: Optional[int]):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.events: List[AuditEvent] = []

    def record(
        self,
        table_name: str,
        record_id: Optional[int],
        action: AuditAction,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.events.append(AuditEvent(
            tenant_id=self.tenant_id,
            table_name=table_name,
            record_id=record_id,
            action=action,
            old_data=old_data,
            new_data=new_data,
            changed_by=self.user_id,
        ))
