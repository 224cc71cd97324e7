# ==== CONFIRMATION SERVICE ==== #

"""
Confirmation and lock workflow for WBS nodes and tasks.

This module provides the confirm, undo, summary and history operations over
the append-only confirmation ledger. Each entity's lock pointer always equals
the greatest confirmed date still in the ledger: confirm can only move it
forward, and undo is the only way to move it back or remove it.
"""

import datetime as dt
import time
from typing import List, Optional, Tuple

from app.business.rules.context import RuleContext
from app.business.rules.engine import RuleEngine
from app.business.rules.exceptions import NotFoundError, PolicyDisabledError, ProgressError
from app.business.rules.numbers import RuleNumber
from app.observability.logging import get_logger, log_business_event
from app.observability.metrics import (
    confirmation_duration_seconds,
    confirmation_operations_total,
)
from app.observability.tracing import get_tracer
from app.resilience.retry_policies import RetryPolicy, create_confirmation_retry_policy
from app.schemas.confirmation import (
    ActivationState,
    ConfirmationRecord,
    ConfirmationSummary,
    EntityType,
    LockedAt,
    Unlocked,
)
from app.services.audit import AuditAction, AuditEvent, AuditLogService, AuditTrail
from app.storage.confirmation_store import (
    ConfirmationStore,
    ConfirmationUnit,
    EntitySnapshot,
)


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)

CONFIRMATIONS_TABLE = "confirmations"
LOCKS_TABLE = "confirmation_locks"


# ==== CONFIRMATION SERVICE CLASS ==== #


class ConfirmationService:
    """
    Orchestrates confirmations, lock pointers and undo.

    Each call runs as one unit of work on one entity. Rule violations abort the
    unit before anything is written; lost races on the lock pointer are retried
    a bounded number of times and then surfaced as ``ConcurrencyConflict``.
    """

    # Cheap date checks first, lock check last
    CONFIRM_RULES = (
        RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,
        RuleNumber.CONFIRMATION_NOT_BEFORE_BASELINE,
        RuleNumber.CONFIRMATION_QTY_REQUIRED,
        RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK,
    )

    def __init__(
        self,
        engine: RuleEngine,
        store: ConfirmationStore,
        audit: Optional[AuditLogService] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.engine = engine
        self.store = store
        self.audit = audit or AuditLogService()

        policy = retry_policy or create_confirmation_retry_policy()
        self._confirm_with_retry = policy.get_tenacity_decorator("confirm")(self._confirm_once)
        self._undo_with_retry = policy.get_tenacity_decorator("undo")(self._undo_once)

    # ==== CONFIRM ==== #

    async def confirm(
        self,
        tenant_id: int,
        user_id: Optional[int],
        entity_id: int,
        confirmation_date: dt.date,
        remarks: Optional[str] = None,
        entity_type: EntityType = EntityType.WBS,
    ) -> ConfirmationSummary:
        """
        Confirm an entity's progress for a date and advance its lock.

        Args:
            tenant_id: Tenant owning the entity
            user_id: Acting user, recorded on the ledger row
            entity_id: WBS or task identifier
            confirmation_date: Calendar date being confirmed
            remarks: Free-text note stored with the confirmation
            entity_type: Kind of entity being confirmed

        Returns:
            ConfirmationSummary: State after the confirmation

        Raises:
            RuleViolation: A confirmation rule rejected the date
            NotFoundError: Entity is absent, inactive or owned by another tenant
            ConcurrencyConflict: Retries exhausted against concurrent writers
        """
        with tracer.start_as_current_span("confirmation_confirm") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("entity_type", entity_type.value)
            span.set_attribute("entity_id", entity_id)
            span.set_attribute("confirmation_date", confirmation_date.isoformat())

            start = time.perf_counter()
            try:
                summary, events = await self._confirm_with_retry(
                    tenant_id, user_id, entity_type, entity_id, confirmation_date, remarks
                )
            except ProgressError as e:
                span.set_attribute("outcome", type(e).__name__)
                confirmation_operations_total.labels(
                    action="confirm", entity_type=entity_type.value, outcome=type(e).__name__
                ).inc()
                raise
            finally:
                confirmation_duration_seconds.labels(action="confirm").observe(
                    time.perf_counter() - start
                )

            confirmation_operations_total.labels(
                action="confirm", entity_type=entity_type.value, outcome="success"
            ).inc()
            span.set_attribute("lock_date", str(summary.lock_date))

        await self.audit.write(events)
        log_business_event(
            "confirmation_created",
            tenant=str(tenant_id),
            entity_type=entity_type.value,
            entity_id=entity_id,
            confirmation_date=confirmation_date.isoformat(),
            lock_date=summary.lock_date.isoformat() if summary.lock_date else None,
            user_id=user_id,
        )
        return summary

    async def _confirm_once(
        self,
        tenant_id: int,
        user_id: Optional[int],
        entity_type: EntityType,
        entity_id: int,
        confirmation_date: dt.date,
        remarks: Optional[str],
    ) -> Tuple[ConfirmationSummary, List[AuditEvent]]:
        trail = AuditTrail(tenant_id, user_id)

        async with self.store.transaction(tenant_id) as unit:
            entity = await self._load_entity(unit, entity_type, entity_id, require_active=True)
            baseline = await unit.baseline_start(entity)
            day_qty = await unit.actual_qty_for_date(entity, confirmation_date)
            lock = await unit.get_lock(entity_type, entity_id)

            ctx = RuleContext(
                tenant_id=tenant_id,
                user_id=user_id,
                entity_type=entity_type.value,
                entity_id=entity_id,
                confirmation_date=confirmation_date,
                baseline_start_date=baseline,
                actual_qty=day_qty,
                planned_qty=entity.planned_qty,
                lock_date=lock.lock_date if lock else None,
                is_locked=lock is not None,
            )
            await self.engine.validate_all(self.CONFIRM_RULES, ctx)

            existing = await unit.find_confirmation(entity_type, entity_id, confirmation_date)
            if existing is not None:
                # Re-confirming a date is an edit of a confirmed entry
                await self.engine.validate(
                    RuleNumber.CONFIRMATION_CANNOT_BE_OVERWRITTEN,
                    ctx.with_changes(is_confirmed=True),
                )
                logger.info(
                    "Date already confirmed",
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    confirmation_id=existing.id,
                )
            else:
                record = await unit.add_confirmation(
                    entity_type, entity_id, confirmation_date, day_qty, user_id, remarks
                )
                trail.record(
                    CONFIRMATIONS_TABLE, record.id, AuditAction.INSERT,
                    new_data=record.model_dump()
                )

                new_lock_date = (
                    confirmation_date if lock is None
                    else max(lock.lock_date, confirmation_date)
                )
                if lock is None or new_lock_date != lock.lock_date:
                    saved = await unit.save_lock(entity_type, entity_id, new_lock_date, user_id)
                    trail.record(
                        LOCKS_TABLE, saved.id,
                        AuditAction.INSERT if lock is None else AuditAction.UPDATE,
                        old_data=lock.model_dump() if lock else None,
                        new_data=saved.model_dump(),
                    )
                await unit.set_entity_lock_state(
                    entity_type, entity_id, LockedAt(new_lock_date), user_id
                )

            summary = await self._summarize(unit, entity)

        return summary, trail.events

    # ==== UNDO ==== #

    async def undo(
        self,
        tenant_id: int,
        user_id: Optional[int],
        confirmation_id: int,
    ) -> ConfirmationSummary:
        """
        Remove a confirmation and move the lock back to the remaining maximum.

        Args:
            tenant_id: Tenant owning the confirmation
            user_id: Acting user
            confirmation_id: Ledger row to remove

        Returns:
            ConfirmationSummary: State after the undo

        Raises:
            PolicyDisabledError: The undo window rule is not configured
            RuleConfigurationError: The undo window is not a day count
            RuleViolation: The confirmation is older than the undo window
            NotFoundError: Confirmation or entity does not exist for the tenant
        """
        with tracer.start_as_current_span("confirmation_undo") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("confirmation_id", confirmation_id)

            start = time.perf_counter()
            try:
                window = await self.engine.get_rule_value(
                    tenant_id, RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS
                )
                if window is None:
                    raise PolicyDisabledError(
                        RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS,
                        "Undo of confirmations is disabled for this tenant.",
                        hint="Configure rule 603 with the number of days an undo is allowed."
                    )
                summary, events = await self._undo_with_retry(tenant_id, user_id, confirmation_id)
            except ProgressError as e:
                span.set_attribute("outcome", type(e).__name__)
                confirmation_operations_total.labels(
                    action="undo", entity_type="UNKNOWN", outcome=type(e).__name__
                ).inc()
                raise
            finally:
                confirmation_duration_seconds.labels(action="undo").observe(
                    time.perf_counter() - start
                )

            confirmation_operations_total.labels(
                action="undo", entity_type=summary.entity_type.value, outcome="success"
            ).inc()

        await self.audit.write(events)
        log_business_event(
            "confirmation_undone",
            tenant=str(tenant_id),
            confirmation_id=confirmation_id,
            entity_type=summary.entity_type.value,
            entity_id=summary.entity_id,
            lock_date=summary.lock_date.isoformat() if summary.lock_date else None,
            user_id=user_id,
        )
        return summary

    async def _undo_once(
        self,
        tenant_id: int,
        user_id: Optional[int],
        confirmation_id: int,
    ) -> Tuple[ConfirmationSummary, List[AuditEvent]]:
        trail = AuditTrail(tenant_id, user_id)

        async with self.store.transaction(tenant_id) as unit:
            record = await self._load_confirmation(unit, confirmation_id)
            entity = await self._load_entity(
                unit, record.entity_type, record.entity_id, require_active=False
            )
            # Re-read under the entity lock; a concurrent undo may have won
            record = await self._load_confirmation(unit, confirmation_id)

            ctx = RuleContext(
                tenant_id=tenant_id,
                user_id=user_id,
                entity_type=record.entity_type.value,
                entity_id=record.entity_id,
                confirmation_date=record.confirmation_date,
            )
            await self.engine.validate(RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS, ctx)

            lock = await unit.get_lock(record.entity_type, record.entity_id)
            await unit.delete_confirmation(record.id)
            trail.record(
                CONFIRMATIONS_TABLE, record.id, AuditAction.DELETE,
                old_data=record.model_dump()
            )

            remaining = await unit.max_confirmation_date(record.entity_type, record.entity_id)
            if remaining is None:
                if lock is not None:
                    await unit.delete_lock(record.entity_type, record.entity_id)
                    trail.record(
                        LOCKS_TABLE, lock.id, AuditAction.DELETE,
                        old_data=lock.model_dump()
                    )
                await unit.set_entity_lock_state(
                    record.entity_type, record.entity_id, Unlocked(), user_id
                )
            else:
                if lock is None or lock.lock_date != remaining:
                    saved = await unit.save_lock(
                        record.entity_type, record.entity_id, remaining, user_id
                    )
                    trail.record(
                        LOCKS_TABLE, saved.id,
                        AuditAction.INSERT if lock is None else AuditAction.UPDATE,
                        old_data=lock.model_dump() if lock else None,
                        new_data=saved.model_dump(),
                    )
                await unit.set_entity_lock_state(
                    record.entity_type, record.entity_id, LockedAt(remaining), user_id
                )

            summary = await self._summarize(unit, entity)

        return summary, trail.events

    # ==== READ MODELS ==== #

    async def summary(
        self,
        tenant_id: int,
        entity_id: int,
        preview_date: Optional[dt.date] = None,
        entity_type: EntityType = EntityType.WBS,
    ) -> ConfirmationSummary:
        """
        Confirmation status with quantity aggregates, without side effects.

        Args:
            tenant_id: Tenant owning the entity
            entity_id: WBS or task identifier
            preview_date: Optional date to report recorded quantity for
            entity_type: Kind of entity

        Returns:
            ConfirmationSummary: Current state plus optional preview figures
        """
        with tracer.start_as_current_span("confirmation_summary") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("entity_id", entity_id)

            async with self.store.transaction(tenant_id) as unit:
                entity = await self._load_entity(unit, entity_type, entity_id, for_update=False)
                return await self._summarize(unit, entity, preview_date, lock_rows=False)

    async def history(
        self,
        tenant_id: int,
        entity_id: int,
        entity_type: EntityType = EntityType.WBS,
    ) -> List[ConfirmationRecord]:
        """Ledger rows for an entity, newest confirmation date first."""
        async with self.store.transaction(tenant_id) as unit:
            await self._load_entity(unit, entity_type, entity_id, for_update=False)
            return await unit.list_confirmations(entity_type, entity_id)

    # ==== HELPERS ==== #

    async def _load_entity(
        self,
        unit: ConfirmationUnit,
        entity_type: EntityType,
        entity_id: int,
        require_active: bool = False,
        for_update: bool = True,
    ) -> EntitySnapshot:
        entity = await unit.load_entity(entity_type, entity_id, for_update=for_update)
        if entity is None:
            raise NotFoundError(entity_type.value, entity_id)
        if require_active and entity.activation is not ActivationState.ACTIVE:
            raise NotFoundError(entity_type.value, entity_id)
        return entity

    async def _load_confirmation(
        self,
        unit: ConfirmationUnit,
        confirmation_id: int,
    ) -> ConfirmationRecord:
        record = await unit.get_confirmation(confirmation_id)
        if record is None:
            raise NotFoundError("Confirmation", confirmation_id)
        return record

    async def _summarize(
        self,
        unit: ConfirmationUnit,
        entity: EntitySnapshot,
        preview_date: Optional[dt.date] = None,
        lock_rows: bool = True,
    ) -> ConfirmationSummary:
        lock = await unit.get_lock(entity.entity_type, entity.entity_id, for_update=lock_rows)
        preview_qty = None
        if preview_date is not None:
            preview_qty = await unit.actual_qty_for_date(entity, preview_date)

        return ConfirmationSummary(
            tenant_id=entity.tenant_id,
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            entity_code=entity.code,
            entity_name=entity.name,
            last_confirmation_date=await unit.max_confirmation_date(
                entity.entity_type, entity.entity_id
            ),
            lock_date=lock.lock_date if lock else None,
            planned_qty=entity.planned_qty,
            actual_qty=entity.actual_qty,
            confirmed_qty_to_date=await unit.confirmed_qty_to_date(
                entity.entity_type, entity.entity_id
            ),
            variance=entity.actual_qty - entity.planned_qty,
            preview_date=preview_date,
            preview_actual_qty=preview_qty,
        )
