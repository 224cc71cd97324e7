"""Integration tests for the SQL confirmation ledger, lock pointer and audit trail."""

import datetime as dt
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.business.rules.engine import build_rule_engine
from app.business.rules.exceptions import ConcurrencyConflict, NotFoundError, RuleViolation
from app.business.rules.numbers import RuleNumber
from app.resilience.retry_policies import create_confirmation_retry_policy
from app.schemas.confirmation import EntityType, LockedAt
from app.services.audit import AuditLogService, SqlAuditSink
from app.services.confirmation import ConfirmationService
from app.services.gates import MutationGates
from app.storage.allocation_store import SqlAllocationLookup
from app.storage.confirmation_store import SqlConfirmationStore
from app.storage.models import (
    AuditLog,
    BusinessRule,
    Confirmation,
    ConfirmationLock,
    Project,
    ResourceAllocation,
    Task,
    TaskUpdate,
    Tenant,
    Wbs,
)
from app.storage.rule_store import SqlRuleStore


USER_ID = 42


def days_ago(n: int) -> dt.date:
    return dt.date.today() - dt.timedelta(days=n)


@pytest_asyncio.fixture
async def site(sql_session_factory):
    """One tenant, project and WBS with two tasks and recent progress."""
    async with sql_session_factory() as session:
        async with session.begin():
            tenant = Tenant(code="acme", name="Acme Builders")
            session.add(tenant)
            await session.flush()

            project = Project(tenant_id=tenant.id, project_code="P1", project_name="Tower A")
            session.add(project)
            await session.flush()

            wbs = Wbs(
                tenant_id=tenant.id,
                project_id=project.id,
                wbs_code="WBS-10",
                wbs_name="Foundation",
                start_date=days_ago(30),
                end_date=days_ago(-30),
                planned_qty=Decimal("500.00"),
                actual_qty=Decimal("60.00"),
            )
            session.add(wbs)
            await session.flush()

            first = Task(
                tenant_id=tenant.id, wbs_id=wbs.id, task_code="T1", task_name="Excavation",
                start_date=days_ago(12), planned_qty=Decimal("200"), actual_qty=Decimal("40"),
            )
            second = Task(
                tenant_id=tenant.id, wbs_id=wbs.id, task_code="T2", task_name="Concrete",
                start_date=days_ago(8), planned_qty=Decimal("300"), actual_qty=Decimal("20"),
            )
            session.add_all([first, second])
            await session.flush()

            for n in (1, 2, 5):
                session.add(TaskUpdate(
                    tenant_id=tenant.id, task_id=first.id, update_date=days_ago(n),
                    daily_update_qty=Decimal("10.00"),
                ))
            session.add(TaskUpdate(
                tenant_id=tenant.id, task_id=second.id, update_date=days_ago(2),
                daily_update_qty=Decimal("20.00"),
            ))

            rules = [
                (RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE, "CONFIRMATION", None),
                (RuleNumber.CONFIRMATION_NOT_BEFORE_BASELINE, "CONFIRMATION", None),
                (RuleNumber.CONFIRMATION_QTY_REQUIRED, "CONFIRMATION", None),
                (RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK, "TASK_UPDATE", "Y"),
                (RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS, "CONFIRMATION", "10"),
                (RuleNumber.ALLOCATION_CANNOT_OVERLAP, "ALLOCATION", None),
            ]
            for number, control_point, value in rules:
                session.add(BusinessRule(
                    tenant_id=tenant.id, rule_number=int(number),
                    control_point=control_point, rule_value=value,
                ))

        return {"tenant_id": tenant.id, "wbs_id": wbs.id, "task_ids": (first.id, second.id)}


@pytest.fixture
def sql_engine(sql_session_factory):
    return build_rule_engine(SqlRuleStore(sql_session_factory), SqlAllocationLookup(sql_session_factory))


@pytest.fixture
def service(sql_engine, sql_session_factory):
    return ConfirmationService(
        sql_engine,
        SqlConfirmationStore(sql_session_factory),
        AuditLogService(SqlAuditSink(sql_session_factory)),
        create_confirmation_retry_policy(max_attempts=3, base_delay=0.0),
    )


async def count(factory, model) -> int:
    async with factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.integration
class TestSqlConfirmationWorkflow:
    """Confirm and undo against real tables."""

    @pytest.mark.asyncio
    async def test_confirm_persists_ledger_lock_and_mirror(self, service, site, sql_session_factory):
        tenant_id, wbs_id = site["tenant_id"], site["wbs_id"]

        summary = await service.confirm(tenant_id, USER_ID, wbs_id, days_ago(2), remarks="pour 1")

        # Both tasks progressed on that day
        assert summary.confirmed_qty_to_date == Decimal("30.00")
        assert summary.lock_date == days_ago(2)
        assert summary.entity_code == "WBS-10"

        async with sql_session_factory() as session:
            lock = (await session.execute(select(ConfirmationLock))).scalar_one()
            wbs = await session.get(Wbs, wbs_id)
            audit_rows = (await session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()

        assert lock.lock_date == days_ago(2)
        assert lock.version == 1
        assert lock.entity_type == "WBS"
        assert wbs.is_locked and wbs.is_confirmed
        assert wbs.lock_date == days_ago(2)
        assert [(row.table_name, row.action) for row in audit_rows] == [
            ("confirmations", "INSERT"),
            ("confirmation_locks", "INSERT"),
        ]
        assert audit_rows[0].new_data["confirmation_date"] == days_ago(2).isoformat()
        assert audit_rows[0].changed_by == USER_ID

    @pytest.mark.asyncio
    async def test_baseline_is_earliest_task_start(self, service, site):
        with pytest.raises(RuleViolation) as exc_info:
            await service.confirm(site["tenant_id"], USER_ID, site["wbs_id"], days_ago(13))

        assert exc_info.value.rule_number == 701
        assert days_ago(12).isoformat() in exc_info.value.message

    @pytest.mark.asyncio
    async def test_lock_monotonic_and_undo_recomputes(self, service, site, sql_session_factory):
        tenant_id, wbs_id = site["tenant_id"], site["wbs_id"]

        await service.confirm(tenant_id, USER_ID, wbs_id, days_ago(1))
        summary = await service.confirm(tenant_id, USER_ID, wbs_id, days_ago(5))
        assert summary.lock_date == days_ago(1)

        history = await service.history(tenant_id, wbs_id)
        assert [r.confirmation_date for r in history] == [days_ago(1), days_ago(5)]

        summary = await service.undo(tenant_id, USER_ID, history[0].id)
        assert summary.lock_date == days_ago(5)
        assert summary.lock_state == LockedAt(days_ago(5))

        summary = await service.undo(tenant_id, USER_ID, history[1].id)
        assert summary.lock_date is None

        assert await count(sql_session_factory, Confirmation) == 0
        assert await count(sql_session_factory, ConfirmationLock) == 0
        async with sql_session_factory() as session:
            wbs = await session.get(Wbs, wbs_id)
        assert wbs.is_locked is False
        assert wbs.lock_date is None

    @pytest.mark.asyncio
    async def test_violation_writes_nothing(self, service, site, sql_session_factory):
        with pytest.raises(RuleViolation):
            await service.confirm(site["tenant_id"], USER_ID, site["wbs_id"], days_ago(3))

        assert await count(sql_session_factory, Confirmation) == 0
        assert await count(sql_session_factory, ConfirmationLock) == 0
        assert await count(sql_session_factory, AuditLog) == 0

    @pytest.mark.asyncio
    async def test_task_confirmation_uses_own_progress(self, service, site):
        first_task, _ = site["task_ids"]

        summary = await service.confirm(
            site["tenant_id"], USER_ID, first_task, days_ago(5), entity_type=EntityType.TASK
        )

        assert summary.entity_type is EntityType.TASK
        assert summary.confirmed_qty_to_date == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_entity(self, service, site):
        with pytest.raises(NotFoundError):
            await service.summary(site["tenant_id"] + 1, site["wbs_id"])


@pytest.mark.integration
class TestSqlConcurrencyControl:
    """Unique ledger dates and optimistic lock pointer versions."""

    @pytest.mark.asyncio
    async def test_duplicate_date_is_a_conflict(self, site, sql_session_factory):
        store = SqlConfirmationStore(sql_session_factory)

        with pytest.raises(ConcurrencyConflict):
            async with store.transaction(site["tenant_id"]) as unit:
                await unit.add_confirmation(EntityType.WBS, site["wbs_id"], days_ago(1), None, None, None)
                await unit.add_confirmation(EntityType.WBS, site["wbs_id"], days_ago(1), None, None, None)

        assert await count(sql_session_factory, Confirmation) == 0

    @pytest.mark.asyncio
    async def test_lock_version_increments(self, site, sql_session_factory):
        store = SqlConfirmationStore(sql_session_factory)
        tenant_id, wbs_id = site["tenant_id"], site["wbs_id"]

        async with store.transaction(tenant_id) as unit:
            created = await unit.save_lock(EntityType.WBS, wbs_id, days_ago(5), USER_ID)
        async with store.transaction(tenant_id) as unit:
            moved = await unit.save_lock(EntityType.WBS, wbs_id, days_ago(1), USER_ID)

        assert created.version == 1
        assert moved.version == 2
        assert moved.lock_date == days_ago(1)

    @pytest.mark.asyncio
    async def test_stale_lock_pointer_is_a_conflict(self, site, sql_session_factory):
        store = SqlConfirmationStore(sql_session_factory)
        tenant_id, wbs_id = site["tenant_id"], site["wbs_id"]

        async with store.transaction(tenant_id) as unit:
            await unit.save_lock(EntityType.WBS, wbs_id, days_ago(5), USER_ID)

        with pytest.raises(ConcurrencyConflict):
            async with store.transaction(tenant_id) as slow:
                await slow.get_lock(EntityType.WBS, wbs_id)
                async with store.transaction(tenant_id) as fast:
                    await fast.save_lock(EntityType.WBS, wbs_id, days_ago(1), USER_ID)
                await slow.save_lock(EntityType.WBS, wbs_id, days_ago(3), USER_ID)

        async with store.transaction(tenant_id) as unit:
            lock = await unit.get_lock(EntityType.WBS, wbs_id, for_update=False)
        assert lock.lock_date == days_ago(1)
        assert lock.version == 2


@pytest.mark.integration
class TestSqlAllocationGate:
    """Overlap query against stored allocations."""

    @pytest.mark.asyncio
    async def test_overlap_and_self_exclusion(self, sql_engine, site, sql_session_factory):
        async with sql_session_factory() as session:
            async with session.begin():
                allocation = ResourceAllocation(
                    tenant_id=site["tenant_id"], wbs_id=site["wbs_id"], resource_type="MANPOWER",
                    resource_id=7, start_date=dt.date(2025, 1, 1), end_date=dt.date(2025, 1, 5),
                )
                session.add(allocation)

        gates = MutationGates(sql_engine)

        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_allocation(
                site["tenant_id"], USER_ID, "MANPOWER", 7, site["wbs_id"],
                dt.date(2025, 1, 4), dt.date(2025, 1, 10),
            )
        assert exc_info.value.rule_number == 602

        await gates.check_allocation(
            site["tenant_id"], USER_ID, "MANPOWER", 7, site["wbs_id"],
            dt.date(2025, 1, 1), dt.date(2025, 1, 5), allocation_id=allocation.id,
        )
        await gates.check_allocation(
            site["tenant_id"], USER_ID, "MANPOWER", 7, site["wbs_id"],
            dt.date(2025, 1, 6), dt.date(2025, 1, 10),
        )
