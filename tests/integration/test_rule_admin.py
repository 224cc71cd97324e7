"""Integration tests for rule administration against the rule engine."""

import pytest
import pytest_asyncio
from pydantic import ValidationError
from sqlalchemy import select

from app.business.rules.context import RuleContext
from app.business.rules.engine import build_rule_engine
from app.business.rules.exceptions import NotFoundError, RuleAdminError
from app.business.rules.numbers import RuleNumber
from app.schemas.rule import BusinessRuleCreate, BusinessRuleUpdate
from app.services.audit import AuditLogService, SqlAuditSink
from app.services.rule_admin import RuleAdminService
from app.storage.allocation_store import SqlAllocationLookup
from app.storage.models import AuditLog, Tenant
from app.storage.rule_store import SqlRuleStore


USER_ID = 7


@pytest_asyncio.fixture
async def tenant_id(sql_session_factory):
    async with sql_session_factory() as session:
        async with session.begin():
            tenant = Tenant(code="rules-co", name="Rules Co")
            session.add(tenant)
    return tenant.id


@pytest.fixture
def sql_engine(sql_session_factory):
    return build_rule_engine(SqlRuleStore(sql_session_factory), SqlAllocationLookup(sql_session_factory))


@pytest.fixture
def admin(sql_engine, sql_session_factory):
    return RuleAdminService(
        SqlRuleStore(sql_session_factory),
        sql_engine.catalog,
        AuditLogService(SqlAuditSink(sql_session_factory)),
    )


@pytest.mark.integration
class TestRuleAdministration:
    """Rule CRUD keeps the engine's catalog current."""

    @pytest.mark.asyncio
    async def test_seed_defaults_is_idempotent(self, admin, sql_engine, tenant_id):
        created = await admin.seed_defaults(tenant_id, USER_ID)
        again = await admin.seed_defaults(tenant_id, USER_ID)

        assert len(created) == 18
        assert again == []
        assert await sql_engine.get_rule_value(tenant_id, RuleNumber.BACKDATE_ALLOWED_TILL) == "7"
        assert await admin.control_points(tenant_id) == [
            "ALLOCATION", "ATTENDANCE", "CONFIRMATION", "MATERIAL",
            "PROJECT", "TASK", "TASK_UPDATE", "WBS",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_rule_number_rejected(self, admin, tenant_id):
        request = BusinessRuleCreate(rule_number=101, control_point="TASK_UPDATE", rule_value="7")
        await admin.create_rule(tenant_id, USER_ID, request)

        with pytest.raises(RuleAdminError, match="101"):
            await admin.create_rule(tenant_id, USER_ID, request)

    @pytest.mark.asyncio
    async def test_description_defaults_from_rule_metadata(self, admin, tenant_id):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=702, control_point="CONFIRMATION"),
        )

        assert rule.description == "An actual quantity must exist for the confirmation date"

    @pytest.mark.asyncio
    async def test_update_is_visible_to_engine_immediately(self, admin, sql_engine, tenant_id):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=101, control_point="TASK_UPDATE", rule_value="7"),
        )
        assert await sql_engine.get_rule_value(tenant_id, 101) == "7"

        updated = await admin.update_rule(
            tenant_id, USER_ID, rule.id, BusinessRuleUpdate(rule_value="3")
        )

        assert updated.rule_value == "3"
        assert await sql_engine.get_rule_value(tenant_id, 101) == "3"

    @pytest.mark.asyncio
    async def test_toggle_disables_rule(self, admin, sql_engine, tenant_id):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=402, control_point="TASK_UPDATE"),
        )
        assert await sql_engine.is_rule_active(tenant_id, 402)

        toggled = await admin.toggle_rule(tenant_id, USER_ID, rule.id)

        assert toggled.active is False
        assert not await sql_engine.is_rule_active(tenant_id, 402)

    @pytest.mark.asyncio
    async def test_delete_removes_rule(self, admin, sql_engine, tenant_id):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=603, control_point="CONFIRMATION", rule_value="5"),
        )

        await admin.delete_rule(tenant_id, USER_ID, rule.id)

        assert await sql_engine.get_rule_value(tenant_id, 603) is None
        with pytest.raises(NotFoundError):
            await admin.get_rule(tenant_id, rule.id)

    @pytest.mark.asyncio
    async def test_rules_are_tenant_scoped(self, admin, tenant_id):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=101, control_point="TASK_UPDATE", rule_value="7"),
        )

        with pytest.raises(NotFoundError):
            await admin.get_rule(tenant_id + 1, rule.id)

    @pytest.mark.asyncio
    async def test_unknown_number_is_stored_but_ignored(self, admin, sql_engine, tenant_id):
        await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=999, control_point="CUSTOM", rule_value="x"),
        )

        assert [rule.rule_number for rule in await admin.list_rules(tenant_id)] == [999]
        await sql_engine.validate(999, RuleContext(tenant_id=tenant_id))

    @pytest.mark.asyncio
    async def test_writes_are_audited(self, admin, tenant_id, sql_session_factory):
        rule = await admin.create_rule(
            tenant_id, USER_ID,
            BusinessRuleCreate(rule_number=101, control_point="TASK_UPDATE", rule_value="7"),
        )
        await admin.update_rule(tenant_id, USER_ID, rule.id, BusinessRuleUpdate(rule_value="10"))

        async with sql_session_factory() as session:
            rows = (await session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()

        assert [(row.table_name, row.action) for row in rows] == [
            ("business_rules", "INSERT"),
            ("business_rules", "UPDATE"),
        ]
        assert rows[1].old_data["rule_value"] == "7"
        assert rows[1].new_data["rule_value"] == "10"
        assert rows[1].changed_by == USER_ID


@pytest.mark.unit
class TestRuleSchemas:
    """Request validation before anything reaches the store."""

    def test_applicability_is_normalized(self):
        request = BusinessRuleCreate(rule_number=102, control_point="TASK_UPDATE", applicability=" n ")

        assert request.applicability == "N"

    def test_invalid_applicability_rejected(self):
        with pytest.raises(ValidationError, match="applicability must be Y or N"):
            BusinessRuleUpdate(applicability="maybe")

    def test_rule_number_must_be_positive(self):
        with pytest.raises(ValidationError):
            BusinessRuleCreate(rule_number=0, control_point="TASK")
