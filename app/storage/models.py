"""SQLAlchemy models for Elina progress tracking."""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.storage.db import Base


QTY = Numeric(18, 2)


class Tenant(Base):
    """Tenant configuration and metadata."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    # Relationships
    projects = relationship("Project", back_populates="tenant_rel")
    rules = relationship("BusinessRule", back_populates="tenant_rel")


class Project(Base):
    """Construction project owning a WBS tree."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    project_code: Mapped[str] = mapped_column(String(64), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "project_code", name="uq_project_code"),
    )

    # Relationships
    tenant_rel = relationship("Tenant", back_populates="projects")
    wbs_nodes = relationship("Wbs", back_populates="project_rel")


class Wbs(Base):
    """Work breakdown structure node with denormalized progress and lock state."""

    __tablename__ = "wbs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    parent_wbs_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("wbs.id"), nullable=True)
    wbs_code: Mapped[str] = mapped_column(String(64), nullable=False)
    wbs_name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)

    # Progress aggregates
    planned_qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)
    actual_qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)

    # Lifecycle mirrors of the confirmation ledger
    is_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lock_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Audit fields
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "project_id", "wbs_code", name="uq_wbs_code"),
        Index("ix_wbs_tenant_project", "tenant_id", "project_id"),
    )

    # Relationships
    project_rel = relationship("Project", back_populates="wbs_nodes")
    tasks = relationship("Task", back_populates="wbs_rel")


class Task(Base):
    """Schedulable task under a WBS node."""

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    wbs_id: Mapped[int] = mapped_column(Integer, ForeignKey("wbs.id"), nullable=False, index=True)
    task_code: Mapped[str] = mapped_column(String(64), nullable=False)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)

    planned_qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)
    actual_qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)

    is_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lock_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("ix_tasks_tenant_wbs_start", "tenant_id", "wbs_id", "start_date"),
    )

    # Relationships
    wbs_rel = relationship("Wbs", back_populates="tasks")


class TaskUpdate(Base):
    """Day-wise progress quantity recorded against a task."""

    __tablename__ = "task_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id"), nullable=False)
    update_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    daily_update_qty: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("ix_task_updates_tenant_task_date", "tenant_id", "task_id", "update_date"),
    )


class ResourceAllocation(Base):
    """Manpower or equipment allocated to a WBS node for a date range."""

    __tablename__ = "resource_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    wbs_id: Mapped[int] = mapped_column(Integer, ForeignKey("wbs.id"), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(16), nullable=False)  # MANPOWER|EQUIPMENT
    resource_id: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index(
            "ix_allocations_resource_scope",
            "tenant_id", "resource_type", "resource_id", "wbs_id"
        ),
    )


class BusinessRule(Base):
    """Tenant configuration row for one numbered business rule."""

    __tablename__ = "business_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    rule_number: Mapped[int] = mapped_column(Integer, nullable=False)
    control_point: Mapped[str] = mapped_column(String(64), nullable=False)
    applicability: Mapped[str] = mapped_column(String(1), default="Y", nullable=False)
    rule_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    activate_flag: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "rule_number", name="uq_business_rule_number"),
        Index("ix_business_rules_tenant_cp", "tenant_id", "control_point"),
    )

    # Relationships
    tenant_rel = relationship("Tenant", back_populates="rules")


class Confirmation(Base):
    """Append-only ledger row: one confirmed date for one entity."""

    __tablename__ = "confirmations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    confirmation_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    confirmed_qty: Mapped[Optional[Decimal]] = mapped_column(QTY, nullable=True)
    confirmed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    confirmed_on: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "entity_type", "entity_id", "confirmation_date",
            name="uq_confirmation_entity_date"
        ),
        Index("ix_confirmations_entity", "tenant_id", "entity_type", "entity_id"),
    )


class ConfirmationLock(Base):
    """Lock pointer: greatest confirmed date of an entity."""

    __tablename__ = "confirmation_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    lock_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "entity_type", "entity_id", name="uq_confirmation_lock_entity"),
    )

    __mapper_args__ = {"version_id_col": version}


class AuditLog(Base):
    """Before/after snapshot of a ledger or rule mutation."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # INSERT|UPDATE|DELETE
    old_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    changed_at: Mapped[dt.datetime] = mapped_column(
        DateTime,
        default=dt.datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
    )
