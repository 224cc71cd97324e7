# ==== RULE CATALOG ==== #

"""
Per-tenant cache of business rule definitions.

Each tenant's rules are loaded in one query and kept as an immutable snapshot.
Loads and invalidations are serialized by a single lock, and a snapshot is
replaced as a whole, so readers never observe a partially updated rule set.
"""

import asyncio
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from app.business.rules.context import RuleDefinition
from app.observability.logging import get_logger
from app.observability.metrics import (
    rule_catalog_hits_total,
    rule_catalog_misses_total,
    rule_catalog_reloads_total,
    rule_catalog_tenants,
)
from app.observability.tracing import get_tracer


tracer = get_tracer(__name__)
logger = get_logger(__name__)


class RuleSource(ABC):
    """Backing store the catalog loads tenant rules from."""

    @abstractmethod
    async def load_rules(self, tenant_id: int) -> List[RuleDefinition]:
        """Return every rule row configured for the tenant."""


class RuleCatalog:
    """Snapshot cache of rule definitions keyed by tenant."""

    def __init__(self, source: RuleSource):
        self.source = source
        self._snapshots: Dict[int, Mapping[int, RuleDefinition]] = {}
        self._lock = asyncio.Lock()

    async def snapshot(self, tenant_id: int) -> Mapping[int, RuleDefinition]:
        """Return the tenant's rules keyed by rule number, loading on a miss."""
        cached = self._snapshots.get(tenant_id)
        if cached is not None:
            rule_catalog_hits_total.inc()
            return cached

        rule_catalog_misses_total.inc()
        async with self._lock:
            # Another task may have loaded while we waited
            cached = self._snapshots.get(tenant_id)
            if cached is not None:
                return cached

            with tracer.start_as_current_span("rule_catalog_load") as span:
                span.set_attribute("tenant_id", tenant_id)
                rules = await self.source.load_rules(tenant_id)
                span.set_attribute("rule_count", len(rules))

            loaded = MappingProxyType({rule.rule_number: rule for rule in rules})
            self._snapshots[tenant_id] = loaded
            rule_catalog_reloads_total.labels(tenant=str(tenant_id)).inc()
            rule_catalog_tenants.set(len(self._snapshots))
            logger.debug("Rule catalog loaded", tenant_id=tenant_id, rule_count=len(rules))
            return loaded

    async def get(self, tenant_id: int, rule_number: int) -> Optional[RuleDefinition]:
        """Rule definition for the tenant, or None when not configured."""
        rules = await self.snapshot(tenant_id)
        return rules.get(int(rule_number))

    async def active_rules(self, tenant_id: int) -> List[RuleDefinition]:
        """Enforced rules ordered by rule number."""
        rules = await self.snapshot(tenant_id)
        return sorted(
            (rule for rule in rules.values() if rule.is_enforced),
            key=lambda rule: rule.rule_number
        )

    async def rules_for_control_point(
        self,
        tenant_id: int,
        control_point: str
    ) -> List[RuleDefinition]:
        """Enforced rules attached to a control point."""
        wanted = control_point.upper()
        return [
            rule for rule in await self.active_rules(tenant_id)
            if (rule.control_point or "").upper() == wanted
        ]

    async def invalidate(self, tenant_id: int) -> None:
        """Drop the tenant snapshot so the next read reloads it."""
        async with self._lock:
            self._snapshots.pop(tenant_id, None)
            rule_catalog_tenants.set(len(self._snapshots))
        logger.info("Rule catalog invalidated", tenant_id=tenant_id)

    async def invalidate_all(self) -> None:
        """Drop every cached snapshot."""
        async with self._lock:
            self._snapshots.clear()
            rule_catalog_tenants.set(0)
