"""Read-only allocation queries used by the overlap rule."""

import datetime as dt
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.business.rules.validators import AllocationLookup
from app.storage.db import get_session_factory
from app.storage.models import ResourceAllocation


class SqlAllocationLookup(AllocationLookup):
    """Overlap query over active rows of ``resource_allocations``."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

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
        # Closed ranges intersect when each starts on or before the other ends
        conditions = [
            ResourceAllocation.tenant_id == tenant_id,
            ResourceAllocation.resource_type == resource_type.upper(),
            ResourceAllocation.resource_id == resource_id,
            ResourceAllocation.wbs_id == wbs_id,
            ResourceAllocation.activate_flag.is_(True),
            ResourceAllocation.start_date <= end_date,
            ResourceAllocation.end_date >= start_date,
        ]
        if exclude_id is not None:
            conditions.append(ResourceAllocation.id != exclude_id)

        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            result = await session.execute(select(exists().where(*conditions)))
            return bool(result.scalar())
