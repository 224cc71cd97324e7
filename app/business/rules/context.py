# ==== RULE CONTEXT AND DEFINITIONS ==== #

"""
Value objects passed between callers, the rule catalog and validators.

A ``RuleContext`` carries every input a validator may inspect. It is frozen so
one instance can be reused across several ``validate`` calls; callers derive
modified copies with ``with_changes``.
"""

import dataclasses
import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from app.business.rules.numbers import RuleNumber


_QUANTITY_FIELDS = ("planned_qty", "actual_qty", "daily_update_qty", "update_qty", "material_qty")


def to_decimal(value) -> Optional[Decimal]:
    """Coerce int, float or string quantities to Decimal without binary noise."""
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ==== EXTENSION PARAMETERS ==== #


@dataclass(frozen=True)
class AllocationParams:
    """Resource allocation inputs consumed by the overlap rule."""

    resource_type: str
    resource_id: int
    wbs_id: int
    allocation_id: Optional[int] = None


# Closed set of extension variants a context may carry
RuleParams = Union[AllocationParams]


# ==== RULE CONTEXT ==== #


@dataclass(frozen=True)
class RuleContext:
    """Immutable bag of optional inputs for rule validation."""

    tenant_id: Optional[int] = None
    user_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None

    # Dates
    update_date: Optional[dt.date] = None
    confirmation_date: Optional[dt.date] = None
    lock_date: Optional[dt.date] = None
    task_start_date: Optional[dt.date] = None
    task_end_date: Optional[dt.date] = None
    wbs_start_date: Optional[dt.date] = None
    wbs_end_date: Optional[dt.date] = None
    project_start_date: Optional[dt.date] = None
    project_end_date: Optional[dt.date] = None
    allocation_start_date: Optional[dt.date] = None
    allocation_end_date: Optional[dt.date] = None
    attendance_date: Optional[dt.date] = None
    material_usage_date: Optional[dt.date] = None
    baseline_start_date: Optional[dt.date] = None
    work_date: Optional[dt.date] = None

    # Quantities
    planned_qty: Optional[Decimal] = None
    actual_qty: Optional[Decimal] = None
    daily_update_qty: Optional[Decimal] = None
    update_qty: Optional[Decimal] = None
    material_qty: Optional[Decimal] = None

    # Flags
    is_confirmed: bool = False
    is_locked: bool = False

    # Evaluation day; None means the current date at validation time
    as_of: Optional[dt.date] = None

    params: Optional[RuleParams] = field(default=None)

    def __post_init__(self):
        for name in _QUANTITY_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def today(self) -> dt.date:
        """Evaluation day for relative date rules."""
        return self.as_of or dt.date.today()

    def with_changes(self, **changes) -> "RuleContext":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    @property
    def allocation(self) -> Optional[AllocationParams]:
        """Allocation parameters when the context carries them."""
        if isinstance(self.params, AllocationParams):
            return self.params
        return None


# ==== RULE DEFINITION ==== #


@dataclass(frozen=True)
class RuleDefinition:
    """Tenant-scoped configuration row for one rule number."""

    tenant_id: int
    rule_number: int
    control_point: Optional[str] = None
    applicability: str = "Y"
    rule_value: Optional[str] = None
    description: Optional[str] = None
    active: bool = True
    id: Optional[int] = None

    @property
    def is_enforced(self) -> bool:
        """Rule is applicable (``Y``, any case) and active."""
        return self.active and (self.applicability or "").strip().upper() == "Y"

    @property
    def known_number(self) -> Optional[RuleNumber]:
        """Engine enum member for this row, or None for an unknown number."""
        try:
            return RuleNumber(self.rule_number)
        except ValueError:
            return None
