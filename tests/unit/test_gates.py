"""Unit tests for mutation gates on task updates, allocations and edits."""

import datetime as dt
from decimal import Decimal

import pytest

from app.business.rules.exceptions import RuleViolation
from app.business.rules.numbers import RuleNumber
from app.services.gates import PlanLine


TENANT_ID = 1
USER_ID = 42


def days_ago(n: int) -> dt.date:
    return dt.date.today() - dt.timedelta(days=n)


@pytest.fixture
def all_rules(rule_source, rule_factory):
    """Default-like catalog: 7 day backdate window, no edits after lock."""
    values = {
        RuleNumber.BACKDATE_ALLOWED_TILL: "7",
        RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK: "N",
    }
    for number in RuleNumber:
        rule_source.put(rule_factory.create_rule(number, values.get(number)))
    return rule_source


@pytest.mark.unit
class TestTaskUpdateGate:
    """Day-wise progress entries."""

    @pytest.mark.asyncio
    async def test_valid_update_passes(self, gates, all_rules):
        await gates.check_task_update(
            TENANT_ID, USER_ID, 100, days_ago(2),
            daily_update_qty=Decimal("10"), planned_qty=Decimal("100"), actual_qty=Decimal("50"),
        )

    @pytest.mark.asyncio
    async def test_update_beyond_backdate_window(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_update(
                TENANT_ID, USER_ID, 100, days_ago(8),
                daily_update_qty=Decimal("1"), planned_qty=Decimal("100"), actual_qty=Decimal("0"),
            )

        assert exc_info.value.rule_number == 101

    @pytest.mark.asyncio
    async def test_update_before_lock_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_update(
                TENANT_ID, USER_ID, 100, days_ago(3),
                daily_update_qty=Decimal("1"), planned_qty=Decimal("100"), actual_qty=Decimal("0"),
                lock_date=days_ago(2),
            )

        assert exc_info.value.rule_number == 102

    @pytest.mark.asyncio
    async def test_update_after_lock_allowed(self, gates, all_rules):
        await gates.check_task_update(
            TENANT_ID, USER_ID, 100, days_ago(1),
            daily_update_qty=Decimal("1"), planned_qty=Decimal("100"), actual_qty=Decimal("0"),
            lock_date=days_ago(2),
        )

    @pytest.mark.asyncio
    async def test_update_on_lock_date_allowed(self, gates, all_rules):
        await gates.check_task_update(
            TENANT_ID, USER_ID, 100, days_ago(2),
            daily_update_qty=Decimal("1"), planned_qty=Decimal("100"), actual_qty=Decimal("0"),
            lock_date=days_ago(2),
        )

    @pytest.mark.asyncio
    async def test_negative_checked_before_ceiling(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_update(
                TENANT_ID, USER_ID, 100, days_ago(1),
                daily_update_qty=Decimal("-5"), planned_qty=Decimal("100"), actual_qty=Decimal("200"),
            )

        assert exc_info.value.rule_number == 402

    @pytest.mark.asyncio
    async def test_update_exceeding_plan(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_update(
                TENANT_ID, USER_ID, 100, days_ago(1),
                daily_update_qty=Decimal("0.01"), planned_qty=Decimal("100.00"), actual_qty=Decimal("100.00"),
            )

        assert exc_info.value.rule_number == 401
        assert "100.01" in exc_info.value.message


@pytest.mark.unit
class TestAllocationGate:
    """Manpower and equipment allocations."""

    @pytest.fixture
    def booked(self, allocation_lookup):
        allocation_lookup.add(11, TENANT_ID, "MANPOWER", 7, 3, days_ago(6), days_ago(2))
        return allocation_lookup

    @pytest.mark.asyncio
    async def test_overlapping_allocation_rejected(self, gates, all_rules, booked):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_allocation(
                TENANT_ID, USER_ID, "manpower", 7, 3, days_ago(3), days_ago(0),
                wbs_start_date=days_ago(30), wbs_end_date=days_ago(-30),
            )

        assert exc_info.value.rule_number == 602
        assert booked.calls[-1]["resource_type"] == "MANPOWER"

    @pytest.mark.asyncio
    async def test_same_allocation_update_is_self_excluded(self, gates, all_rules, booked):
        await gates.check_allocation(
            TENANT_ID, USER_ID, "MANPOWER", 7, 3, days_ago(6), days_ago(2),
            wbs_start_date=days_ago(30), wbs_end_date=days_ago(-30),
            allocation_id=11,
        )

        assert booked.calls[-1]["exclude_id"] == 11

    @pytest.mark.asyncio
    async def test_equipment_does_not_collide_with_manpower(self, gates, all_rules, booked):
        await gates.check_allocation(
            TENANT_ID, USER_ID, "EQUIPMENT", 7, 3, days_ago(3), days_ago(0),
        )

    @pytest.mark.asyncio
    async def test_missing_dates_rejected_before_lookup(self, gates, all_rules, booked):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_allocation(TENANT_ID, USER_ID, "MANPOWER", 7, 3, days_ago(3), None)

        assert exc_info.value.rule_number == 501
        assert booked.calls == []

    @pytest.mark.asyncio
    async def test_allocation_outside_wbs_rejected(self, gates, all_rules, booked):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_allocation(
                TENANT_ID, USER_ID, "EQUIPMENT", 9, 3, days_ago(3), days_ago(-10),
                wbs_start_date=days_ago(30), wbs_end_date=days_ago(-5),
            )

        assert exc_info.value.rule_number == 601
        assert booked.calls == []

    @pytest.mark.asyncio
    async def test_unknown_resource_type(self, gates, all_rules):
        with pytest.raises(ValueError, match="Unknown resource type: VEHICLE"):
            await gates.check_allocation(TENANT_ID, USER_ID, "vehicle", 7, 3, days_ago(3), days_ago(0))


@pytest.mark.unit
class TestMasterDataGates:
    """WBS, task, project, attendance and material edits."""

    @pytest.mark.asyncio
    async def test_locked_wbs_cannot_be_edited(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_wbs_edit(
                TENANT_ID, USER_ID, 10, days_ago(10), days_ago(-10), lock_date=days_ago(2)
            )

        assert exc_info.value.rule_number == 301

    @pytest.mark.asyncio
    async def test_wbs_range_checked(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_wbs_edit(TENANT_ID, USER_ID, 10, days_ago(1), days_ago(5))

        assert exc_info.value.rule_number == 202

    @pytest.mark.asyncio
    async def test_task_outside_wbs_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_edit(
                TENANT_ID, USER_ID, 100, days_ago(20), days_ago(-5),
                wbs_start_date=days_ago(10), wbs_end_date=days_ago(-30),
            )

        assert exc_info.value.rule_number == 207

    @pytest.mark.asyncio
    async def test_task_future_start_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_task_edit(TENANT_ID, USER_ID, 100, days_ago(-1), days_ago(-5))

        assert exc_info.value.rule_number == 201

    @pytest.mark.asyncio
    async def test_project_range_checked(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_project_edit(TENANT_ID, USER_ID, 1, days_ago(0), days_ago(1))

        assert exc_info.value.rule_number == 206

    @pytest.mark.asyncio
    async def test_future_attendance_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_attendance(TENANT_ID, USER_ID, days_ago(-1))

        assert exc_info.value.rule_number == 204

    @pytest.mark.asyncio
    async def test_material_usage_today_allowed(self, gates, all_rules):
        await gates.check_material_usage(TENANT_ID, USER_ID, days_ago(0), Decimal("3.5"))

    @pytest.mark.asyncio
    async def test_gates_are_noops_without_rules(self, gates):
        await gates.check_task_update(
            TENANT_ID, USER_ID, 100, days_ago(400),
            daily_update_qty=Decimal("-1"), planned_qty=Decimal("1"), actual_qty=Decimal("5"),
            lock_date=days_ago(2),
        )
        await gates.check_attendance(TENANT_ID, USER_ID, days_ago(-30))


@pytest.mark.unit
class TestPlanVersionGate:
    """Plan versions with dated lines."""

    @pytest.mark.asyncio
    async def test_valid_plan_passes(self, gates, all_rules):
        await gates.check_plan_version(
            TENANT_ID, USER_ID, 100,
            [PlanLine(days_ago(3), Decimal("10")), PlanLine(days_ago(0), Decimal("0"))],
            version_date=days_ago(0),
        )

    @pytest.mark.asyncio
    async def test_backdated_line_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_plan_version(
                TENANT_ID, USER_ID, 100, [PlanLine(days_ago(8), Decimal("10"))]
            )

        assert exc_info.value.rule_number == 101

    @pytest.mark.asyncio
    async def test_future_line_rejected(self, gates, rule_source, rule_factory):
        rule_source.put(rule_factory.create_rule(RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE))

        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_plan_version(
                TENANT_ID, USER_ID, 100, [PlanLine(days_ago(-2), Decimal("10"))]
            )

        assert exc_info.value.rule_number == 201
        assert days_ago(-2).isoformat() in exc_info.value.message

    @pytest.mark.asyncio
    async def test_negative_planned_qty_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_plan_version(
                TENANT_ID, USER_ID, 100, [PlanLine(days_ago(1), Decimal("-4"))]
            )

        assert exc_info.value.rule_number == 402
        assert "Planned quantity" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_first_failing_line_wins(self, gates, all_rules):
        lines = [
            PlanLine(days_ago(1), Decimal("5")),
            PlanLine(days_ago(2), Decimal("-1")),
            PlanLine(days_ago(30), Decimal("5")),
        ]

        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_plan_version(TENANT_ID, USER_ID, 100, lines)

        assert exc_info.value.rule_number == 402

    @pytest.mark.asyncio
    async def test_future_version_date_rejected(self, gates, all_rules):
        with pytest.raises(RuleViolation) as exc_info:
            await gates.check_plan_version(
                TENANT_ID, USER_ID, 100, [PlanLine(days_ago(1), Decimal("5"))],
                version_date=days_ago(-1),
            )

        assert exc_info.value.rule_number == 201

    @pytest.mark.asyncio
    async def test_undated_lines_skipped(self, gates, all_rules):
        await gates.check_plan_version(TENANT_ID, USER_ID, 100, [PlanLine(None, Decimal("-1"))])
