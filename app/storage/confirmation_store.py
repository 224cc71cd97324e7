# ==== CONFIRMATION LEDGER STORE ==== #

"""
Persistence for the confirmation ledger and lock pointers.

This module defines the unit-of-work contract the confirmation service runs
against and its SQLAlchemy implementation. A unit is scoped to one tenant and
one database transaction; entity and lock pointer rows are read with row-level
locks and the lock pointer carries an optimistic version, so a lost race
surfaces as ``ConcurrencyConflict`` and nothing from the unit is committed.
"""

import datetime as dt
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.business.rules.context import to_decimal
from app.business.rules.exceptions import ConcurrencyConflict
from app.observability.logging import get_logger
from app.observability.metrics import concurrency_conflicts_total
from app.schemas.confirmation import (
    ActivationState,
    ConfirmationRecord,
    EntityType,
    LockPointer,
    LockState,
    lock_state_from_flags,
    lock_state_to_flags,
)
from app.storage.db import get_session_factory
from app.storage.models import Confirmation, ConfirmationLock, Task, TaskUpdate, Wbs


logger = get_logger(__name__)


# ==== ENTITY SNAPSHOT ==== #


@dataclass(frozen=True)
class EntitySnapshot:
    """Confirmable entity as seen by the confirmation workflow."""

    tenant_id: int
    entity_type: EntityType
    entity_id: int
    code: Optional[str]
    name: Optional[str]
    start_date: Optional[dt.date]
    end_date: Optional[dt.date]
    planned_qty: Decimal
    actual_qty: Decimal
    is_confirmed: bool
    lock_state: LockState
    activation: ActivationState


# ==== UNIT OF WORK CONTRACT ==== #


class ConfirmationUnit(ABC):
    """Tenant-scoped reads and writes inside one transaction."""

    tenant_id: int

    @abstractmethod
    async def load_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        for_update: bool = False,
    ) -> Optional[EntitySnapshot]:
        """Entity owned by the tenant, optionally row-locked."""

    @abstractmethod
    async def baseline_start(self, entity: EntitySnapshot) -> Optional[dt.date]:
        """Earliest task start for a WBS, else the entity's own start."""

    @abstractmethod
    async def actual_qty_for_date(self, entity: EntitySnapshot, day: dt.date) -> Decimal:
        """Progress quantity recorded for the entity on ``day``."""

    @abstractmethod
    async def get_lock(
        self,
        entity_type: EntityType,
        entity_id: int,
        for_update: bool = True,
    ) -> Optional[LockPointer]:
        """Current lock pointer, row-locked unless ``for_update`` is False."""

    @abstractmethod
    async def save_lock(
        self,
        entity_type: EntityType,
        entity_id: int,
        lock_date: dt.date,
        user_id: Optional[int],
    ) -> LockPointer:
        """Create the lock pointer or move it to ``lock_date``."""

    @abstractmethod
    async def delete_lock(self, entity_type: EntityType, entity_id: int) -> None:
        """Remove the lock pointer."""

    @abstractmethod
    async def set_entity_lock_state(
        self,
        entity_type: EntityType,
        entity_id: int,
        state: LockState,
        user_id: Optional[int],
    ) -> None:
        """Mirror the lock state onto the entity row."""

    @abstractmethod
    async def find_confirmation(
        self,
        entity_type: EntityType,
        entity_id: int,
        day: dt.date,
    ) -> Optional[ConfirmationRecord]:
        """Ledger row for one entity and date."""

    @abstractmethod
    async def add_confirmation(
        self,
        entity_type: EntityType,
        entity_id: int,
        day: dt.date,
        confirmed_qty: Optional[Decimal],
        user_id: Optional[int],
        remarks: Optional[str],
    ) -> ConfirmationRecord:
        """Append a ledger row."""

    @abstractmethod
    async def get_confirmation(self, confirmation_id: int) -> Optional[ConfirmationRecord]:
        """Ledger row by id within the tenant."""

    @abstractmethod
    async def delete_confirmation(self, confirmation_id: int) -> None:
        """Remove a ledger row."""

    @abstractmethod
    async def max_confirmation_date(
        self,
        entity_type: EntityType,
        entity_id: int,
    ) -> Optional[dt.date]:
        """Greatest confirmed date among existing ledger rows."""

    @abstractmethod
    async def confirmed_qty_to_date(self, entity_type: EntityType, entity_id: int) -> Decimal:
        """Sum of confirmed quantities in the ledger."""

    @abstractmethod
    async def list_confirmations(
        self,
        entity_type: EntityType,
        entity_id: int,
    ) -> List[ConfirmationRecord]:
        """Ledger rows, newest confirmation date first."""


class ConfirmationStore(ABC):
    """Factory for confirmation units."""

    @abstractmethod
    def transaction(self, tenant_id: int):
        """Async context manager yielding a ``ConfirmationUnit``.

        Commits when the block exits normally and rolls back otherwise.
        """


# ==== SQLALCHEMY IMPLEMENTATION ==== #


EntityModel = Union[Wbs, Task]

ENTITY_MODELS: Dict[EntityType, Type[EntityModel]] = {
    EntityType.WBS: Wbs,
    EntityType.TASK: Task,
}


class SqlConfirmationUnit(ConfirmationUnit):
    """Confirmation unit bound to one ``AsyncSession`` transaction."""

    def __init__(self, session: AsyncSession, tenant_id: int):
        self.session = session
        self.tenant_id = tenant_id
        self._entities: Dict[Tuple[EntityType, int], EntityModel] = {}
        self._locks: Dict[Tuple[EntityType, int], ConfirmationLock] = {}

    # --► ENTITIES

    async def load_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        for_update: bool = False,
    ) -> Optional[EntitySnapshot]:
        model = ENTITY_MODELS[entity_type]
        query = select(model).where(model.id == entity_id, model.tenant_id == self.tenant_id)
        if for_update:
            query = query.with_for_update()

        row = (await self.session.execute(query)).scalar_one_or_none()
        if row is None:
            return None

        self._entities[(entity_type, entity_id)] = row
        return EntitySnapshot(
            tenant_id=row.tenant_id,
            entity_type=entity_type,
            entity_id=row.id,
            code=row.wbs_code if entity_type is EntityType.WBS else row.task_code,
            name=row.wbs_name if entity_type is EntityType.WBS else row.task_name,
            start_date=row.start_date,
            end_date=row.end_date,
            planned_qty=to_decimal(row.planned_qty) or Decimal("0"),
            actual_qty=to_decimal(row.actual_qty) or Decimal("0"),
            is_confirmed=bool(row.is_confirmed),
            lock_state=lock_state_from_flags(row.is_locked, row.lock_date),
            activation=ActivationState.from_flag(row.activate_flag),
        )

    async def baseline_start(self, entity: EntitySnapshot) -> Optional[dt.date]:
        if entity.entity_type is EntityType.WBS:
            earliest = (await self.session.execute(
                select(func.min(Task.start_date)).where(
                    Task.tenant_id == self.tenant_id,
                    Task.wbs_id == entity.entity_id,
                    Task.activate_flag.is_(True),
                )
            )).scalar()
            if earliest is not None:
                return earliest
        return entity.start_date

    async def actual_qty_for_date(self, entity: EntitySnapshot, day: dt.date) -> Decimal:
        query = select(func.coalesce(func.sum(TaskUpdate.daily_update_qty), 0)).where(
            TaskUpdate.tenant_id == self.tenant_id,
            TaskUpdate.update_date == day,
        )
        if entity.entity_type is EntityType.WBS:
            query = query.join(Task, Task.id == TaskUpdate.task_id).where(
                Task.wbs_id == entity.entity_id
            )
        else:
            query = query.where(TaskUpdate.task_id == entity.entity_id)

        return to_decimal((await self.session.execute(query)).scalar()) or Decimal("0")

    async def set_entity_lock_state(
        self,
        entity_type: EntityType,
        entity_id: int,
        state: LockState,
        user_id: Optional[int],
    ) -> None:
        row = self._entities.get((entity_type, entity_id))
        if row is None:
            model = ENTITY_MODELS[entity_type]
            row = (await self.session.execute(
                select(model).where(model.id == entity_id, model.tenant_id == self.tenant_id)
            )).scalar_one()

        row.is_locked, row.lock_date = lock_state_to_flags(state)
        row.is_confirmed = row.is_locked
        row.updated_by = user_id

    # --► LOCK POINTER

    async def _lock_row(
        self,
        entity_type: EntityType,
        entity_id: int,
        for_update: bool = True,
    ) -> Optional[ConfirmationLock]:
        key = (entity_type, entity_id)
        if key not in self._locks:
            query = select(ConfirmationLock).where(
                ConfirmationLock.tenant_id == self.tenant_id,
                ConfirmationLock.entity_type == entity_type.value,
                ConfirmationLock.entity_id == entity_id,
            )
            if for_update:
                query = query.with_for_update()
            row = (await self.session.execute(query)).scalar_one_or_none()
            if row is None:
                return None
            self._locks[key] = row
        return self._locks[key]

    async def get_lock(
        self,
        entity_type: EntityType,
        entity_id: int,
        for_update: bool = True,
    ) -> Optional[LockPointer]:
        row = await self._lock_row(entity_type, entity_id, for_update)
        return LockPointer.model_validate(row) if row is not None else None

    async def save_lock(
        self,
        entity_type: EntityType,
        entity_id: int,
        lock_date: dt.date,
        user_id: Optional[int],
    ) -> LockPointer:
        row = await self._lock_row(entity_type, entity_id)
        if row is None:
            row = ConfirmationLock(
                tenant_id=self.tenant_id,
                entity_type=entity_type.value,
                entity_id=entity_id,
                lock_date=lock_date,
                created_by=user_id,
                updated_by=user_id,
            )
            self.session.add(row)
            self._locks[(entity_type, entity_id)] = row
        else:
            row.lock_date = lock_date
            row.updated_by = user_id

        # Flush here so version and unique conflicts surface inside the unit
        await self.session.flush()
        return LockPointer.model_validate(row)

    async def delete_lock(self, entity_type: EntityType, entity_id: int) -> None:
        row = await self._lock_row(entity_type, entity_id)
        if row is not None:
            await self.session.delete(row)
            await self.session.flush()
            self._locks.pop((entity_type, entity_id), None)

    # --► LEDGER

    async def find_confirmation(
        self,
        entity_type: EntityType,
        entity_id: int,
        day: dt.date,
    ) -> Optional[ConfirmationRecord]:
        row = (await self.session.execute(
            select(Confirmation).where(
                Confirmation.tenant_id == self.tenant_id,
                Confirmation.entity_type == entity_type.value,
                Confirmation.entity_id == entity_id,
                Confirmation.confirmation_date == day,
            )
        )).scalar_one_or_none()
        return ConfirmationRecord.model_validate(row) if row is not None else None

    async def add_confirmation(
        self,
        entity_type: EntityType,
        entity_id: int,
        day: dt.date,
        confirmed_qty: Optional[Decimal],
        user_id: Optional[int],
        remarks: Optional[str],
    ) -> ConfirmationRecord:
        now = dt.datetime.utcnow()
        row = Confirmation(
            tenant_id=self.tenant_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            confirmation_date=day,
            confirmed_qty=confirmed_qty,
            confirmed_by=user_id,
            confirmed_on=now,
            remarks=remarks,
            created_by=user_id,
            created_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return ConfirmationRecord.model_validate(row)

    async def get_confirmation(self, confirmation_id: int) -> Optional[ConfirmationRecord]:
        row = (await self.session.execute(
            select(Confirmation).where(
                Confirmation.id == confirmation_id,
                Confirmation.tenant_id == self.tenant_id,
            )
        )).scalar_one_or_none()
        return ConfirmationRecord.model_validate(row) if row is not None else None

    async def delete_confirmation(self, confirmation_id: int) -> None:
        await self.session.execute(
            delete(Confirmation).where(
                Confirmation.id == confirmation_id,
                Confirmation.tenant_id == self.tenant_id,
            )
        )

    async def max_confirmation_date(
        self,
        entity_type: EntityType,
        entity_id: int,
    ) -> Optional[dt.date]:
        return (await self.session.execute(
            select(func.max(Confirmation.confirmation_date)).where(
                Confirmation.tenant_id == self.tenant_id,
                Confirmation.entity_type == entity_type.value,
                Confirmation.entity_id == entity_id,
            )
        )).scalar()

    async def confirmed_qty_to_date(self, entity_type: EntityType, entity_id: int) -> Decimal:
        total = (await self.session.execute(
            select(func.coalesce(func.sum(Confirmation.confirmed_qty), 0)).where(
                Confirmation.tenant_id == self.tenant_id,
                Confirmation.entity_type == entity_type.value,
                Confirmation.entity_id == entity_id,
            )
        )).scalar()
        return to_decimal(total) or Decimal("0")

    async def list_confirmations(
        self,
        entity_type: EntityType,
        entity_id: int,
    ) -> List[ConfirmationRecord]:
        result = await self.session.execute(
            select(Confirmation)
            .where(
                Confirmation.tenant_id == self.tenant_id,
                Confirmation.entity_type == entity_type.value,
                Confirmation.entity_id == entity_id,
            )
            .order_by(Confirmation.confirmation_date.desc(), Confirmation.confirmed_on.desc())
        )
        return [ConfirmationRecord.model_validate(row) for row in result.scalars()]


class SqlConfirmationStore(ConfirmationStore):
    """Confirmation units backed by SQLAlchemy sessions."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self, tenant_id: int) -> AsyncIterator[SqlConfirmationUnit]:
        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            try:
                async with session.begin():
                    yield SqlConfirmationUnit(session, tenant_id)
            except (IntegrityError, StaleDataError) as e:
                concurrency_conflicts_total.labels(operation="ledger_write").inc()
                logger.warning(
                    "Lock pointer write conflict",
                    tenant_id=tenant_id,
                    error_type=type(e).__name__,
                )
                raise ConcurrencyConflict(str(e)) from e
