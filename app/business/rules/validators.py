# ==== BUSINESS RULE VALIDATORS ==== #

"""
Native validators for the business rule engine.

Each validator owns a fixed tuple of rule numbers and raises ``RuleViolation``
when the context breaks the configured policy. Validators never write; the
overlap validator issues a read-only lookup against committed allocations.
"""

import datetime as dt
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Tuple

from app.business.rules.context import RuleContext, RuleDefinition
from app.business.rules.exceptions import RuleConfigurationError, RuleViolation
from app.business.rules.numbers import RuleNumber


# ==== VALIDATOR CONTRACT ==== #


class RuleValidator(ABC):
    """Stateless policy check owning one or more rule numbers."""

    rule_numbers: Tuple[RuleNumber, ...] = ()

    @abstractmethod
    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        """Raise ``RuleViolation`` if ``ctx`` breaks ``rule``."""

    @property
    def name(self) -> str:
        return type(self).__name__


class AllocationLookup(ABC):
    """Read-only query over committed resource allocations."""

    @abstractmethod
    async def exists_overlapping(
        self,
        tenant_id: int,
        resource_type: str,
        resource_id: int,
        wbs_id: int,
        start_date: dt.date,
        end_date: dt.date,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """True if another allocation of the resource intersects the range."""


# ==== HELPERS ==== #


def parse_day_count(rule: RuleDefinition, rule_name: str) -> int:
    """Parse a non-negative day count from the rule value."""
    raw = (rule.rule_value or "").strip()
    try:
        days = int(raw)
    except ValueError:
        raise RuleConfigurationError(
            rule.rule_number,
            f"Invalid rule value for {rule_name}",
            hint=f"Set rule {rule.rule_number} to a whole number of days, got {raw!r}."
        ) from None
    if days < 0:
        raise RuleConfigurationError(
            rule.rule_number,
            f"Invalid rule value for {rule_name}",
            hint=f"Rule {rule.rule_number} cannot be negative, got {days}."
        )
    return days


def _check_range(
    rule: RuleDefinition,
    label: str,
    start: Optional[dt.date],
    end: Optional[dt.date],
) -> None:
    if start is not None and end is not None and end < start:
        raise RuleViolation(
            rule.rule_number,
            f"{label} end date ({end}) cannot be before start date ({start}).",
            hint="Choose an end date on or after the start date."
        )


# ==== DATE POLICIES ==== #


class BackdateRuleValidator(RuleValidator):
    """Backdating window and post-lock edits for dated entries."""

    rule_numbers = (
        RuleNumber.BACKDATE_ALLOWED_TILL,
        RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        target = ctx.update_date or ctx.confirmation_date
        if target is None:
            return

        if rule.rule_number == RuleNumber.BACKDATE_ALLOWED_TILL:
            self._check_window(rule, ctx, target)
        else:
            self._check_lock(rule, ctx, target)

    def _check_window(self, rule: RuleDefinition, ctx: RuleContext, target: dt.date) -> None:
        allowed_days = parse_day_count(rule, "BACKDATE_ALLOWED_TILL")
        today = ctx.today()

        if target > today:
            raise RuleViolation(
                rule.rule_number,
                f"Cannot backdate to a future date: {target}",
                hint="Choose today or an earlier date."
            )

        days_back = (today - target).days
        if days_back > allowed_days:
            raise RuleViolation(
                rule.rule_number,
                f"Backdating is only allowed for {allowed_days} days. "
                f"Attempted to backdate by {days_back} days.",
                hint=f"You can only backdate up to {allowed_days} days from today."
            )

    def _check_lock(self, rule: RuleDefinition, ctx: RuleContext, target: dt.date) -> None:
        if ctx.lock_date is None:
            return
        if (rule.rule_value or "").strip().upper() == "Y":
            return
        if target < ctx.lock_date:
            raise RuleViolation(
                rule.rule_number,
                f"Cannot backdate before lock date ({ctx.lock_date}). Update date: {target}",
                hint="Undo the later confirmation first or ask an administrator "
                     "to allow edits after lock."
            )


class FutureDateRuleValidator(RuleValidator):
    """Start, confirmation and plan work dates cannot lie in the future."""

    rule_numbers = (RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE,)

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        candidate = ctx.confirmation_date or ctx.task_start_date or ctx.work_date
        if candidate is not None and candidate > ctx.today():
            raise RuleViolation(
                rule.rule_number,
                f"Date {candidate} cannot be in the future.",
                hint="Choose today or an earlier date."
            )
        _check_range(rule, "Task", ctx.task_start_date, ctx.task_end_date)


class DateRangeRuleValidator(RuleValidator):
    """End date must not precede start date for WBS, allocation and project."""

    rule_numbers = (
        RuleNumber.WBS_DATE_RANGE_VALID,
        RuleNumber.ALLOCATION_DATE_RANGE_VALID,
        RuleNumber.PROJECT_DATE_RANGE_VALID,
        RuleNumber.ALLOCATION_DATES_REQUIRED,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        number = rule.rule_number
        if number == RuleNumber.WBS_DATE_RANGE_VALID:
            _check_range(rule, "WBS", ctx.wbs_start_date, ctx.wbs_end_date)
        elif number == RuleNumber.PROJECT_DATE_RANGE_VALID:
            _check_range(rule, "Project", ctx.project_start_date, ctx.project_end_date)
        else:
            if number == RuleNumber.ALLOCATION_DATES_REQUIRED and (
                ctx.allocation_start_date is None or ctx.allocation_end_date is None
            ):
                raise RuleViolation(
                    number,
                    "Allocation start date and end date are required.",
                    hint="Provide both dates for the allocation."
                )
            _check_range(rule, "Allocation", ctx.allocation_start_date, ctx.allocation_end_date)


class EntryDateRuleValidator(RuleValidator):
    """Attendance and material usage entries cannot be future dated."""

    rule_numbers = (
        RuleNumber.ATTENDANCE_NOT_IN_FUTURE,
        RuleNumber.MATERIAL_USAGE_VALID,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        today = ctx.today()

        if rule.rule_number == RuleNumber.ATTENDANCE_NOT_IN_FUTURE:
            if ctx.attendance_date is not None and ctx.attendance_date > today:
                raise RuleViolation(
                    rule.rule_number,
                    f"Attendance date {ctx.attendance_date} cannot be in the future."
                )
            return

        if ctx.material_usage_date is not None and ctx.material_usage_date > today:
            raise RuleViolation(
                rule.rule_number,
                f"Material usage date {ctx.material_usage_date} cannot be in the future."
            )
        if ctx.material_qty is not None and ctx.material_qty < 0:
            raise RuleViolation(
                rule.rule_number,
                f"Material quantity ({ctx.material_qty:.2f}) cannot be negative."
            )


class ContainmentRuleValidator(RuleValidator):
    """Child date ranges must lie within the parent WBS range."""

    rule_numbers = (
        RuleNumber.ALLOCATION_WITHIN_WBS_DATES,
        RuleNumber.TASK_WITHIN_WBS_DATES,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        if rule.rule_number == RuleNumber.ALLOCATION_WITHIN_WBS_DATES:
            label, start, end = "Allocation", ctx.allocation_start_date, ctx.allocation_end_date
        else:
            label, start, end = "Task", ctx.task_start_date, ctx.task_end_date

        if start is not None and ctx.wbs_start_date is not None and start < ctx.wbs_start_date:
            raise RuleViolation(
                rule.rule_number,
                f"{label} start date ({start}) cannot be before WBS start date "
                f"({ctx.wbs_start_date}).",
                hint="Keep the dates within the WBS schedule."
            )
        if end is not None and ctx.wbs_end_date is not None and end > ctx.wbs_end_date:
            raise RuleViolation(
                rule.rule_number,
                f"{label} end date ({end}) cannot be after WBS end date ({ctx.wbs_end_date}).",
                hint="Keep the dates within the WBS schedule."
            )


# ==== STATE AND QUANTITY POLICIES ==== #


class FreezeRuleValidator(RuleValidator):
    """Confirmed or locked entries are immutable."""

    rule_numbers = (RuleNumber.CONFIRMATION_CANNOT_BE_OVERWRITTEN,)

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        if ctx.is_confirmed:
            raise RuleViolation(
                rule.rule_number,
                f"Cannot modify confirmed entry. Entry ID: {ctx.entity_id}",
                hint="Undo the confirmation before editing."
            )
        if ctx.is_locked:
            raise RuleViolation(
                rule.rule_number,
                f"Cannot modify locked entry. Entry ID: {ctx.entity_id}",
                hint=f"The entry is locked up to {ctx.lock_date}." if ctx.lock_date else None
            )


class QuantityRuleValidator(RuleValidator):
    """Planned quantity ceiling and non-negative floor."""

    rule_numbers = (
        RuleNumber.DAILY_UPDATE_CANNOT_EXCEED_PLANNED_QTY,
        RuleNumber.QUANTITY_CANNOT_BE_NEGATIVE,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        if rule.rule_number == RuleNumber.QUANTITY_CANNOT_BE_NEGATIVE:
            self._check_floor(rule, ctx)
        else:
            self._check_ceiling(rule, ctx)

    def _check_ceiling(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        if ctx.planned_qty is None:
            return

        if ctx.daily_update_qty is not None:
            label = "Daily update quantity"
            resulting = (ctx.actual_qty or Decimal("0")) + ctx.daily_update_qty
        elif ctx.update_qty is not None:
            label, resulting = "Update quantity", ctx.update_qty
        elif ctx.actual_qty is not None:
            label, resulting = "Actual quantity", ctx.actual_qty
        else:
            return

        if resulting > ctx.planned_qty:
            raise RuleViolation(
                rule.rule_number,
                f"{label} ({resulting:.2f}) cannot exceed planned quantity "
                f"({ctx.planned_qty:.2f}).",
                hint=f"Remaining quantity is {max(ctx.planned_qty - (ctx.actual_qty or 0), 0):.2f}."
            )

    def _check_floor(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        for label, value in (
            ("Daily update quantity", ctx.daily_update_qty),
            ("Update quantity", ctx.update_qty),
            ("Actual quantity", ctx.actual_qty),
            ("Planned quantity", ctx.planned_qty),
        ):
            if value is not None and value < 0:
                raise RuleViolation(
                    rule.rule_number,
                    f"{label} ({value:.2f}) cannot be negative."
                )


class OverlapRuleValidator(RuleValidator):
    """A resource cannot hold two intersecting allocations in one WBS."""

    rule_numbers = (RuleNumber.ALLOCATION_CANNOT_OVERLAP,)

    def __init__(self, lookup: AllocationLookup):
        self.lookup = lookup

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        allocation = ctx.allocation
        start, end = ctx.allocation_start_date, ctx.allocation_end_date
        if allocation is None or start is None or end is None:
            return

        overlapping = await self.lookup.exists_overlapping(
            tenant_id=ctx.tenant_id,
            resource_type=allocation.resource_type,
            resource_id=allocation.resource_id,
            wbs_id=allocation.wbs_id,
            start_date=start,
            end_date=end,
            exclude_id=allocation.allocation_id,
        )
        if overlapping:
            raise RuleViolation(
                rule.rule_number,
                f"{allocation.resource_type.title()} resource {allocation.resource_id} is already "
                f"allocated to WBS {allocation.wbs_id} for overlapping dates ({start} to {end}).",
                hint="Change the dates or release the existing allocation first."
            )


# ==== CONFIRMATION POLICIES ==== #


class ConfirmationRuleValidator(RuleValidator):
    """Baseline and quantity preconditions for confirming a date."""

    rule_numbers = (
        RuleNumber.CONFIRMATION_NOT_BEFORE_BASELINE,
        RuleNumber.CONFIRMATION_QTY_REQUIRED,
    )

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        if rule.rule_number == RuleNumber.CONFIRMATION_NOT_BEFORE_BASELINE:
            baseline = ctx.baseline_start_date
            if (
                ctx.confirmation_date is not None
                and baseline is not None
                and ctx.confirmation_date < baseline
            ):
                raise RuleViolation(
                    rule.rule_number,
                    f"Confirmation date ({ctx.confirmation_date}) cannot be before the "
                    f"earliest task start date ({baseline}).",
                    hint="Work cannot be confirmed before it was scheduled to start."
                )
            return

        if ctx.actual_qty is None or ctx.actual_qty <= 0:
            raise RuleViolation(
                rule.rule_number,
                "No actual quantity recorded for the selected confirmation date.",
                hint="Record a progress update for that date before confirming."
            )


class UndoWindowRuleValidator(RuleValidator):
    """Confirmations can only be undone within N days of the confirmed date."""

    rule_numbers = (RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS,)

    async def validate(self, rule: RuleDefinition, ctx: RuleContext) -> None:
        allowed_days = parse_day_count(rule, "CONFIRMATION_UNDO_WINDOW_DAYS")
        if ctx.confirmation_date is None:
            return

        days_since = (ctx.today() - ctx.confirmation_date).days
        if days_since > allowed_days:
            raise RuleViolation(
                rule.rule_number,
                f"Confirmation for {ctx.confirmation_date} can no longer be undone. "
                f"Undo is allowed within {allowed_days} days; this confirmation is "
                f"{days_since} days old.",
                hint="Ask an administrator to extend the undo window."
            )
