# ==== MUTATION GATES ==== #

"""
Rule gates for mutating operations outside the confirmation workflow.

Each gate builds a ``RuleContext`` for one kind of change and runs the
matching rules in order, cheap date checks before the overlap query, stopping
at the first violation.
"""

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from app.business.rules.context import AllocationParams, RuleContext
from app.business.rules.engine import RuleEngine
from app.business.rules.numbers import RuleNumber
from app.observability.tracing import get_tracer


tracer = get_tracer(__name__)


class ResourceType:
    MANPOWER = "MANPOWER"
    EQUIPMENT = "EQUIPMENT"

    ALL = (MANPOWER, EQUIPMENT)


@dataclass(frozen=True)
class PlanLine:
    """One dated line of a task plan version."""

    work_date: Optional[dt.date]
    planned_qty: Optional[Decimal] = None


class MutationGates:
    """Validates task updates, plan versions, allocations and master-data edits."""

    TASK_UPDATE_RULES = (
        RuleNumber.BACKDATE_ALLOWED_TILL,
        RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,
        RuleNumber.QUANTITY_CANNOT_BE_NEGATIVE,
        RuleNumber.DAILY_UPDATE_CANNOT_EXCEED_PLANNED_QTY,
    )

    ALLOCATION_RULES = (
        RuleNumber.ALLOCATION_DATES_REQUIRED,
        RuleNumber.ALLOCATION_DATE_RANGE_VALID,
        RuleNumber.ALLOCATION_WITHIN_WBS_DATES,
        RuleNumber.BACKDATE_ALLOWED_TILL,
        RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK,
        RuleNumber.ALLOCATION_CANNOT_OVERLAP,
    )

    WBS_EDIT_RULES = (
        RuleNumber.CONFIRMATION_CANNOT_BE_OVERWRITTEN,
        RuleNumber.WBS_DATE_RANGE_VALID,
    )

    TASK_EDIT_RULES = (
        RuleNumber.CONFIRMATION_CANNOT_BE_OVERWRITTEN,
        RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,
        RuleNumber.TASK_WITHIN_WBS_DATES,
    )

    PROJECT_EDIT_RULES = (RuleNumber.PROJECT_DATE_RANGE_VALID,)

    PLAN_LINE_RULES = (
        RuleNumber.BACKDATE_ALLOWED_TILL,
        RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,
        RuleNumber.QUANTITY_CANNOT_BE_NEGATIVE,
    )

    def __init__(self, engine: RuleEngine):
        self.engine = engine

    async def _run(self, gate: str, rules, ctx: RuleContext) -> None:
        with tracer.start_as_current_span("mutation_gate") as span:
            span.set_attribute("gate", gate)
            span.set_attribute("tenant_id", ctx.tenant_id or 0)
            await self.engine.validate_all(rules, ctx)

    async def check_task_update(
        self,
        tenant_id: int,
        user_id: Optional[int],
        task_id: int,
        update_date: dt.date,
        daily_update_qty: Decimal,
        planned_qty: Optional[Decimal],
        actual_qty: Optional[Decimal],
        lock_date: Optional[dt.date] = None,
    ) -> None:
        """
        Gate a day-wise progress entry on a task.

        The post-lock backdate rule joins the list only when the entry falls
        before the task's lock date; an entry on the lock date itself is allowed.
        """
        rules: List[int] = list(self.TASK_UPDATE_RULES)
        if lock_date is not None and update_date < lock_date:
            rules.insert(1, RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK)

        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="TASK",
            entity_id=task_id,
            update_date=update_date,
            lock_date=lock_date,
            daily_update_qty=daily_update_qty,
            planned_qty=planned_qty,
            actual_qty=actual_qty,
        )
        await self._run("task_update", rules, ctx)

    async def check_allocation(
        self,
        tenant_id: int,
        user_id: Optional[int],
        resource_type: str,
        resource_id: int,
        wbs_id: int,
        start_date: Optional[dt.date],
        end_date: Optional[dt.date],
        wbs_start_date: Optional[dt.date] = None,
        wbs_end_date: Optional[dt.date] = None,
        lock_date: Optional[dt.date] = None,
        allocation_id: Optional[int] = None,
    ) -> None:
        """Gate creating or updating a manpower or equipment allocation."""
        resource_type = resource_type.upper()
        if resource_type not in ResourceType.ALL:
            raise ValueError(f"Unknown resource type: {resource_type}")

        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="ALLOCATION",
            entity_id=allocation_id,
            allocation_start_date=start_date,
            allocation_end_date=end_date,
            update_date=start_date,
            wbs_start_date=wbs_start_date,
            wbs_end_date=wbs_end_date,
            lock_date=lock_date,
            params=AllocationParams(
                resource_type=resource_type,
                resource_id=resource_id,
                wbs_id=wbs_id,
                allocation_id=allocation_id,
            ),
        )
        await self._run("allocation", self.ALLOCATION_RULES, ctx)

    async def check_wbs_edit(
        self,
        tenant_id: int,
        user_id: Optional[int],
        wbs_id: int,
        start_date: Optional[dt.date],
        end_date: Optional[dt.date],
        is_confirmed: bool = False,
        lock_date: Optional[dt.date] = None,
    ) -> None:
        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="WBS",
            entity_id=wbs_id,
            wbs_start_date=start_date,
            wbs_end_date=end_date,
            is_confirmed=is_confirmed,
            is_locked=lock_date is not None,
            lock_date=lock_date,
        )
        await self._run("wbs_edit", self.WBS_EDIT_RULES, ctx)

    async def check_task_edit(
        self,
        tenant_id: int,
        user_id: Optional[int],
        task_id: int,
        start_date: Optional[dt.date],
        end_date: Optional[dt.date],
        wbs_start_date: Optional[dt.date] = None,
        wbs_end_date: Optional[dt.date] = None,
        is_confirmed: bool = False,
        lock_date: Optional[dt.date] = None,
    ) -> None:
        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="TASK",
            entity_id=task_id,
            task_start_date=start_date,
            task_end_date=end_date,
            wbs_start_date=wbs_start_date,
            wbs_end_date=wbs_end_date,
            is_confirmed=is_confirmed,
            is_locked=lock_date is not None,
            lock_date=lock_date,
        )
        await self._run("task_edit", self.TASK_EDIT_RULES, ctx)

    async def check_project_edit(
        self,
        tenant_id: int,
        user_id: Optional[int],
        project_id: int,
        start_date: Optional[dt.date],
        end_date: Optional[dt.date],
    ) -> None:
        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="PROJECT",
            entity_id=project_id,
            project_start_date=start_date,
            project_end_date=end_date,
        )
        await self._run("project_edit", self.PROJECT_EDIT_RULES, ctx)

    async def check_attendance(
        self,
        tenant_id: int,
        user_id: Optional[int],
        attendance_date: dt.date,
    ) -> None:
        ctx = RuleContext(tenant_id=tenant_id, user_id=user_id, attendance_date=attendance_date)
        await self._run("attendance", (RuleNumber.ATTENDANCE_NOT_IN_FUTURE,), ctx)

    async def check_material_usage(
        self,
        tenant_id: int,
        user_id: Optional[int],
        usage_date: dt.date,
        quantity: Decimal,
    ) -> None:
        ctx = RuleContext(
            tenant_id=tenant_id,
            user_id=user_id,
            material_usage_date=usage_date,
            material_qty=quantity,
        )
        await self._run("material_usage", (RuleNumber.MATERIAL_USAGE_VALID,), ctx)

    async def check_plan_version(
        self,
        tenant_id: int,
        user_id: Optional[int],
        task_id: int,
        lines: Sequence[PlanLine],
        version_date: Optional[dt.date] = None,
    ) -> None:
        """
        Gate a new plan version for a task.

        Each line runs the backdate window and future date rules on its work
        date, then the negative quantity rule on its planned quantity. Lines
        without a work date are not checked. The version date itself cannot
        lie in the future.
        """
        for line in lines:
            if line.work_date is None:
                continue
            ctx = RuleContext(
                tenant_id=tenant_id,
                user_id=user_id,
                entity_type="PLAN_LINE",
                entity_id=task_id,
                update_date=line.work_date,
                work_date=line.work_date,
                planned_qty=line.planned_qty,
            )
            await self._run("plan_line", self.PLAN_LINE_RULES, ctx)

        if version_date is not None:
            ctx = RuleContext(
                tenant_id=tenant_id,
                user_id=user_id,
                entity_type="PLAN_VERSION",
                entity_id=task_id,
                work_date=version_date,
            )
            await self._run("plan_version", (RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,), ctx)
