"""Pydantic schemas for business rule administration."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_applicability(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized not in ("Y", "N"):
        raise ValueError("applicability must be Y or N")
    return normalized


class BusinessRuleCreate(BaseModel):
    """Request schema for creating a tenant rule."""

    rule_number: int = Field(..., gt=0)
    control_point: str = Field(..., min_length=1, max_length=64)
    applicability: str = "Y"
    rule_value: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    active: bool = True

    @field_validator("applicability")
    @classmethod
    def check_applicability(cls, value: str) -> str:
        return _normalize_applicability(value)

    @field_validator("control_point")
    @classmethod
    def upper_control_point(cls, value: str) -> str:
        return value.strip().upper()


class BusinessRuleUpdate(BaseModel):
    """Partial update for a tenant rule; unset fields are left unchanged."""

    control_point: Optional[str] = Field(None, min_length=1, max_length=64)
    applicability: Optional[str] = None
    rule_value: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("applicability")
    @classmethod
    def check_applicability(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_applicability(value)

    @field_validator("control_point")
    @classmethod
    def upper_control_point(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value is not None else None


class BusinessRuleResponse(BaseModel):
    """Rule row as returned to administrators."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    rule_number: int
    control_point: Optional[str] = None
    applicability: str
    rule_value: Optional[str] = None
    description: Optional[str] = None
    active: bool
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
