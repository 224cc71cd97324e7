"""Database seeder for demo data."""

import datetime as dt
from decimal import Decimal
from typing import Optional

from sqlalchemy import select

from app.observability.logging import ContextualLogger
from app.storage.db import get_session
from app.storage.models import Project, Task, TaskUpdate, Tenant, Wbs


logger = ContextualLogger(__name__)

DEMO_TENANT_CODE = "demo-builder"


async def seed_demo_data(today: Optional[dt.date] = None) -> Optional[int]:
    """
    Seed a demo tenant with one project, a WBS node, tasks and progress.

    Progress updates are spread over the last few days so the WBS can be
    confirmed right away.

    Returns:
        Optional[int]: Demo tenant ID, or None when demo data already exists
    """
    today = today or dt.date.today()
    logger.info("Starting database seeding")

    async with get_session() as db:
        # Check if data already exists
        existing = await db.execute(select(Tenant).where(Tenant.code == DEMO_TENANT_CODE))
        if existing.scalars().first():
            logger.info("Demo data already exists, skipping seeding")
            return None

        tenant = Tenant(code=DEMO_TENANT_CODE, name="Demo Builder Ltd")
        db.add(tenant)
        await db.flush()

        project = Project(
            tenant_id=tenant.id,
            project_code="PRJ-001",
            project_name="Riverside Residences",
            start_date=today - dt.timedelta(days=30),
            end_date=today + dt.timedelta(days=180),
        )
        db.add(project)
        await db.flush()

        wbs = await _create_demo_wbs(db, tenant.id, project.id, today)
        await _create_demo_tasks(db, tenant.id, wbs, today)

        logger.info(
            "Database seeding completed successfully",
            tenant_id=tenant.id,
            wbs_id=wbs.id,
        )
        return tenant.id


async def _create_demo_wbs(db, tenant_id: int, project_id: int, today: dt.date) -> Wbs:
    wbs = Wbs(
        tenant_id=tenant_id,
        project_id=project_id,
        wbs_code="WBS-10",
        wbs_name="Foundation works",
        start_date=today - dt.timedelta(days=20),
        end_date=today + dt.timedelta(days=40),
        planned_qty=Decimal("500.00"),
        actual_qty=Decimal("0"),
    )
    db.add(wbs)
    await db.flush()
    return wbs


async def _create_demo_tasks(db, tenant_id: int, wbs: Wbs, today: dt.date) -> None:
    """Create excavation and concrete tasks with five days of progress each."""
    specs = [
        ("T-EXC", "Excavation", 14, Decimal("200.00"), Decimal("12.50")),
        ("T-PCC", "Plain cement concrete", 10, Decimal("300.00"), Decimal("8.00")),
    ]

    total = Decimal("0")
    for code, name, started_days_ago, planned, daily in specs:
        task = Task(
            tenant_id=tenant_id,
            wbs_id=wbs.id,
            task_code=code,
            task_name=name,
            start_date=today - dt.timedelta(days=started_days_ago),
            end_date=today + dt.timedelta(days=30),
            planned_qty=planned,
            actual_qty=daily * 5,
        )
        db.add(task)
        await db.flush()

        for offset in range(1, 6):
            db.add(TaskUpdate(
                tenant_id=tenant_id,
                task_id=task.id,
                update_date=today - dt.timedelta(days=offset),
                daily_update_qty=daily,
            ))
        total += daily * 5

    wbs.actual_qty = total
    await db.flush()
    logger.info("Created demo tasks", wbs_id=wbs.id, actual_qty=str(total))
