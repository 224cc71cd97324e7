# ==== RULE ADMINISTRATION SERVICE ==== #

"""
Administration of tenant business rules.

This module provides create, update, delete and toggle operations on a
tenant's rule catalog plus seeding from the default policy file. Every
mutation invalidates the tenant's cached rule snapshot after the write commits
so the next validation sees the change.
"""

import functools
import os
from typing import Any, Dict, List, Optional

import yaml

from app.business.rules.catalog import RuleCatalog
from app.business.rules.exceptions import RuleAdminError
from app.business.rules.numbers import describe_rule
from app.observability.logging import get_logger, log_business_event
from app.observability.tracing import get_tracer
from app.schemas.rule import BusinessRuleCreate, BusinessRuleResponse, BusinessRuleUpdate
from app.services.audit import AuditAction, AuditLogService, AuditTrail
from app.settings import settings
from app.storage.models import BusinessRule
from app.storage.rule_store import SqlRuleStore, rule_snapshot, to_definition


tracer = get_tracer(__name__)
logger = get_logger(__name__)

RULES_TABLE = "business_rules"


# ==== DEFAULT POLICY LOADING ==== #


def default_rules_path() -> str:
    """Location of the shipped default rule catalog."""
    return settings.DEFAULT_RULES_PATH or os.path.join(
        os.path.dirname(__file__),
        "..",
        "business",
        "policies",
        "default_rules.yaml"
    )


@functools.lru_cache(maxsize=8)
def load_default_rules(path: Optional[str] = None) -> List[BusinessRuleCreate]:
    """
    Parse the default rule catalog.

    Args:
        path: YAML file to read; defaults to the packaged catalog

    Returns:
        List[BusinessRuleCreate]: Validated rule definitions
    """
    with tracer.start_as_current_span("load_default_rules") as span:
        config_path = path or default_rules_path()
        span.set_attribute("path", config_path)

        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        rules = [BusinessRuleCreate(**entry) for entry in config.get("rules", [])]
        span.set_attribute("rule_count", len(rules))
        return rules


def to_response(row: BusinessRule) -> BusinessRuleResponse:
    return BusinessRuleResponse(
        id=row.id,
        tenant_id=row.tenant_id,
        rule_number=row.rule_number,
        control_point=row.control_point,
        applicability=row.applicability,
        rule_value=row.rule_value,
        description=row.description,
        active=bool(row.activate_flag),
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ==== RULE ADMIN SERVICE ==== #


class RuleAdminService:
    """CRUD over tenant rules with synchronous catalog invalidation."""

    def __init__(
        self,
        store: SqlRuleStore,
        catalog: RuleCatalog,
        audit: Optional[AuditLogService] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.audit = audit or AuditLogService()

    async def list_rules(self, tenant_id: int) -> List[BusinessRuleResponse]:
        return [to_response(row) for row in await self.store.list_rules(tenant_id)]

    async def get_rule(self, tenant_id: int, rule_id: int) -> BusinessRuleResponse:
        return to_response(await self.store.get_rule(tenant_id, rule_id))

    async def control_points(self, tenant_id: int) -> List[str]:
        return await self.store.control_points(tenant_id)

    async def create_rule(
        self,
        tenant_id: int,
        user_id: Optional[int],
        request: BusinessRuleCreate,
    ) -> BusinessRuleResponse:
        """
        Add a rule to the tenant catalog.

        Raises:
            RuleAdminError: The rule number is already configured
        """
        if await self.store.get_by_number(tenant_id, request.rule_number) is not None:
            raise RuleAdminError(
                f"Rule number {request.rule_number} already exists for tenant {tenant_id}"
            )

        values = request.model_dump()
        if not values.get("description"):
            values["description"] = describe_rule(request.rule_number) or None

        row = await self.store.create_rule(tenant_id, values, user_id)
        definition = to_definition(row)
        if definition.known_number is None:
            logger.warning(
                "Rule number has no validator and will be ignored",
                tenant_id=tenant_id,
                rule_number=row.rule_number,
            )

        await self._after_write(
            tenant_id, user_id, "business_rule_created",
            row.id, AuditAction.INSERT, None, rule_snapshot(row)
        )
        return to_response(row)

    async def update_rule(
        self,
        tenant_id: int,
        user_id: Optional[int],
        rule_id: int,
        request: BusinessRuleUpdate,
    ) -> BusinessRuleResponse:
        changes = request.model_dump(exclude_unset=True)
        before, row = await self.store.update_rule(tenant_id, rule_id, changes, user_id)
        await self._after_write(
            tenant_id, user_id, "business_rule_updated",
            row.id, AuditAction.UPDATE, before, rule_snapshot(row)
        )
        return to_response(row)

    async def toggle_rule(
        self,
        tenant_id: int,
        user_id: Optional[int],
        rule_id: int,
    ) -> BusinessRuleResponse:
        """Flip the active flag of a rule."""
        current = await self.store.get_rule(tenant_id, rule_id)
        return await self.update_rule(
            tenant_id, user_id, rule_id,
            BusinessRuleUpdate(active=not current.activate_flag)
        )

    async def delete_rule(self, tenant_id: int, user_id: Optional[int], rule_id: int) -> None:
        before = await self.store.delete_rule(tenant_id, rule_id)
        await self._after_write(
            tenant_id, user_id, "business_rule_deleted",
            rule_id, AuditAction.DELETE, before, None
        )

    async def seed_defaults(
        self,
        tenant_id: int,
        user_id: Optional[int] = None,
        path: Optional[str] = None,
    ) -> List[BusinessRuleResponse]:
        """
        Create every default rule the tenant does not configure yet.

        Returns:
            List[BusinessRuleResponse]: Newly created rules
        """
        existing = {row.rule_number for row in await self.store.list_rules(tenant_id)}
        created: List[BusinessRuleResponse] = []

        for request in load_default_rules(path):
            if request.rule_number in existing:
                continue
            created.append(await self.create_rule(tenant_id, user_id, request))

        logger.info(
            "Default rules seeded",
            tenant_id=tenant_id,
            created=len(created),
            skipped=len(existing),
        )
        return created

    async def _after_write(
        self,
        tenant_id: int,
        user_id: Optional[int],
        event_type: str,
        record_id: Optional[int],
        action: AuditAction,
        old_data: Optional[Dict[str, Any]],
        new_data: Optional[Dict[str, Any]],
    ) -> None:
        await self.catalog.invalidate(tenant_id)

        trail = AuditTrail(tenant_id, user_id)
        trail.record(RULES_TABLE, record_id, action, old_data=old_data, new_data=new_data)
        await self.audit.write(trail.events)

        snapshot = new_data or old_data or {}
        log_business_event(
            event_type,
            tenant=str(tenant_id),
            rule_id=record_id,
            rule_number=snapshot.get("rule_number"),
            user_id=user_id,
        )
