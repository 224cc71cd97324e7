"""Pydantic schemas and lifecycle states for the confirmation ledger."""

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Entities that can be confirmed and locked."""
    WBS = "WBS"
    TASK = "TASK"


class ActivationState(str, Enum):
    """Activation lifecycle stored as ``activate_flag``."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "ActivationState":
        return cls.ACTIVE if flag else cls.INACTIVE

    @property
    def flag(self) -> bool:
        return self is ActivationState.ACTIVE


# ==== LOCK STATE ==== #


@dataclass(frozen=True)
class Unlocked:
    """No confirmation exists for the entity."""


@dataclass(frozen=True)
class LockedAt:
    """Entity data is frozen up to and including ``lock_date``."""
    lock_date: dt.date


LockState = Union[Unlocked, LockedAt]


def lock_state_from_flags(is_locked: Optional[bool], lock_date: Optional[dt.date]) -> LockState:
    """Translate the stored mirror columns into a lock state."""
    if is_locked and lock_date is not None:
        return LockedAt(lock_date)
    return Unlocked()


def lock_state_to_flags(state: LockState) -> Tuple[bool, Optional[dt.date]]:
    """Translate a lock state into ``(is_locked, lock_date)`` columns."""
    if isinstance(state, LockedAt):
        return True, state.lock_date
    return False, None


# ==== RESPONSE SCHEMAS ==== #


class ConfirmationRecord(BaseModel):
    """One confirmed date for an entity."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    tenant_id: int
    entity_type: EntityType
    entity_id: int
    confirmation_date: dt.date
    confirmed_qty: Optional[Decimal] = None
    confirmed_by: Optional[int] = None
    confirmed_on: Optional[dt.datetime] = None
    remarks: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[dt.datetime] = None


class LockPointer(BaseModel):
    """Current lock pointer of an entity."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    tenant_id: int
    entity_type: EntityType
    entity_id: int
    lock_date: dt.date
    version: int = 1


class ConfirmationSummary(BaseModel):
    """Confirmation status and quantity aggregates for one entity."""

    tenant_id: int
    entity_type: EntityType
    entity_id: int
    entity_code: Optional[str] = None
    entity_name: Optional[str] = None

    last_confirmation_date: Optional[dt.date] = None
    lock_date: Optional[dt.date] = None

    planned_qty: Decimal = Decimal("0")
    actual_qty: Decimal = Decimal("0")
    confirmed_qty_to_date: Decimal = Decimal("0")
    variance: Decimal = Field(
        default=Decimal("0"),
        description="Actual minus planned quantity"
    )

    preview_date: Optional[dt.date] = None
    preview_actual_qty: Optional[Decimal] = None

    @property
    def lock_state(self) -> LockState:
        if self.lock_date is None:
            return Unlocked()
        return LockedAt(self.lock_date)

    @property
    def is_locked(self) -> bool:
        return isinstance(self.lock_state, LockedAt)
