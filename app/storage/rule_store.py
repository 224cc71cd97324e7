# ==== BUSINESS RULE STORE ==== #

"""
SQL persistence for tenant business rules.

Serves as the rule catalog's source and as the backing store for rule
administration. Rows leave this module either as ``BusinessRule`` ORM objects
(admin) or as immutable ``RuleDefinition`` values (engine).
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.business.rules.catalog import RuleSource
from app.business.rules.context import RuleDefinition
from app.business.rules.exceptions import NotFoundError, RuleAdminError
from app.observability.tracing import get_tracer
from app.storage.db import get_session_factory
from app.storage.models import BusinessRule


tracer = get_tracer(__name__)


def to_definition(row: BusinessRule) -> RuleDefinition:
    """Translate a stored rule row into an engine definition."""
    return RuleDefinition(
        id=row.id,
        tenant_id=row.tenant_id,
        rule_number=row.rule_number,
        control_point=row.control_point,
        applicability=row.applicability,
        rule_value=row.rule_value,
        description=row.description,
        active=bool(row.activate_flag),
    )


class SqlRuleStore(RuleSource):
    """Business rule rows in the ``business_rules`` table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    # ==== CATALOG SOURCE ==== #

    async def load_rules(self, tenant_id: int) -> List[RuleDefinition]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BusinessRule).where(BusinessRule.tenant_id == tenant_id)
            )
            return [to_definition(row) for row in result.scalars()]

    # ==== ADMINISTRATION ==== #

    async def list_rules(self, tenant_id: int) -> List[BusinessRule]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BusinessRule)
                .where(BusinessRule.tenant_id == tenant_id)
                .order_by(BusinessRule.rule_number)
            )
            return list(result.scalars())

    async def get_rule(self, tenant_id: int, rule_id: int) -> BusinessRule:
        async with self.session_factory() as session:
            return await self._get_owned(session, tenant_id, rule_id)

    async def get_by_number(self, tenant_id: int, rule_number: int) -> Optional[BusinessRule]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BusinessRule).where(
                    BusinessRule.tenant_id == tenant_id,
                    BusinessRule.rule_number == rule_number,
                )
            )
            return result.scalar_one_or_none()

    async def control_points(self, tenant_id: int) -> List[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BusinessRule.control_point)
                .where(BusinessRule.tenant_id == tenant_id)
                .distinct()
                .order_by(BusinessRule.control_point)
            )
            return list(result.scalars())

    async def create_rule(
        self,
        tenant_id: int,
        values: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> BusinessRule:
        """Insert a rule row; a duplicate rule number raises ``RuleAdminError``."""
        with tracer.start_as_current_span("rule_store_create") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("rule_number", values["rule_number"])

            row = BusinessRule(
                tenant_id=tenant_id,
                rule_number=values["rule_number"],
                control_point=values["control_point"],
                applicability=values.get("applicability", "Y"),
                rule_value=values.get("rule_value"),
                description=values.get("description"),
                activate_flag=values.get("active", True),
                created_by=user_id,
                updated_by=user_id,
            )
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        session.add(row)
            except IntegrityError as e:
                raise RuleAdminError(
                    f"Rule number {values['rule_number']} already exists for tenant {tenant_id}"
                ) from e
            return row

    async def update_rule(
        self,
        tenant_id: int,
        rule_id: int,
        changes: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> tuple[Dict[str, Any], BusinessRule]:
        """Apply changes and return the previous values with the updated row."""
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_owned(session, tenant_id, rule_id, for_update=True)
                before = rule_snapshot(row)
                for field, value in changes.items():
                    setattr(row, "activate_flag" if field == "active" else field, value)
                row.updated_by = user_id
            return before, row

    async def delete_rule(self, tenant_id: int, rule_id: int) -> Dict[str, Any]:
        """Delete a rule and return its last values."""
        async with self.session_factory() as session:
            async with session.begin():
                row = await self._get_owned(session, tenant_id, rule_id, for_update=True)
                before = rule_snapshot(row)
                await session.execute(delete(BusinessRule).where(BusinessRule.id == row.id))
            return before

    async def _get_owned(
        self,
        session: AsyncSession,
        tenant_id: int,
        rule_id: int,
        for_update: bool = False,
    ) -> BusinessRule:
        query = select(BusinessRule).where(
            BusinessRule.id == rule_id,
            BusinessRule.tenant_id == tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        row = (await session.execute(query)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("BusinessRule", rule_id)
        return row


def rule_snapshot(row: BusinessRule) -> Dict[str, Any]:
    """Audit payload for a rule row."""
    return {
        "id": row.id,
        "rule_number": row.rule_number,
        "control_point": row.control_point,
        "applicability": row.applicability,
        "rule_value": row.rule_value,
        "description": row.description,
        "active": bool(row.activate_flag),
    }
