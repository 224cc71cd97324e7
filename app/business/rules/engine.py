# ==== BUSINESS RULE ENGINE ==== #

"""
Business rule engine for Elina progress tracking.

This module provides the dispatcher that resolves a tenant's rule configuration
and invokes the single native validator owning each rule number. Rules that are
not configured, not applicable or inactive are skipped, so tenants opt in to
policies by configuration alone.
"""

import time
from typing import Dict, Iterable, List, Optional, Sequence

from app.business.rules.catalog import RuleCatalog, RuleSource
from app.business.rules.context import RuleContext, RuleDefinition
from app.business.rules.exceptions import (
    RuleConfigurationError,
    RuleRegistryError,
    RuleViolation,
)
from app.business.rules.numbers import RuleNumber
from app.business.rules.validators import (
    AllocationLookup,
    BackdateRuleValidator,
    ConfirmationRuleValidator,
    ContainmentRuleValidator,
    DateRangeRuleValidator,
    EntryDateRuleValidator,
    FreezeRuleValidator,
    FutureDateRuleValidator,
    OverlapRuleValidator,
    QuantityRuleValidator,
    RuleValidator,
    UndoWindowRuleValidator,
)
from app.observability.logging import get_logger
from app.observability.metrics import (
    rule_evaluation_duration_seconds,
    rule_evaluations_total,
    rule_violations_total,
)
from app.observability.tracing import get_tracer


# ==== MODULE INITIALIZATION ==== #


tracer = get_tracer(__name__)
logger = get_logger(__name__)


def require_tenant(tenant_id: Optional[int]) -> int:
    """Tenant id for a catalog lookup; rules are never evaluated without one."""
    if tenant_id is None:
        raise ValueError("tenant_id is required")
    return tenant_id


# ==== VALIDATOR REGISTRY ==== #


class ValidatorRegistry:
    """
    Closed dispatch table from rule number to validator.

    Built once at startup. Every known rule number must have exactly one
    owner; a gap or a duplicate raises ``RuleRegistryError``.
    """

    def __init__(
        self,
        validators: Iterable[RuleValidator],
        required: Iterable[RuleNumber] = tuple(RuleNumber),
    ):
        owners: Dict[int, RuleValidator] = {}

        for validator in validators:
            if not validator.rule_numbers:
                raise RuleRegistryError(f"{validator.name} declares no rule numbers")
            for number in validator.rule_numbers:
                existing = owners.get(int(number))
                if existing is not None:
                    raise RuleRegistryError(
                        f"Rule {int(number)} is owned by both {existing.name} and {validator.name}"
                    )
                owners[int(number)] = validator

        missing = sorted(int(number) for number in required if int(number) not in owners)
        if missing:
            raise RuleRegistryError(f"No validator registered for rules {missing}")

        self._owners = owners

    def owner(self, rule_number: int) -> Optional[RuleValidator]:
        """Validator owning the rule number, or None for an unknown number."""
        return self._owners.get(int(rule_number))

    @property
    def rule_numbers(self) -> List[int]:
        return sorted(self._owners)

    def __contains__(self, rule_number: int) -> bool:
        return int(rule_number) in self._owners


def default_validators(allocation_lookup: AllocationLookup) -> List[RuleValidator]:
    """The full validator set shipped with the engine."""
    return [
        BackdateRuleValidator(),
        FutureDateRuleValidator(),
        DateRangeRuleValidator(),
        EntryDateRuleValidator(),
        ContainmentRuleValidator(),
        FreezeRuleValidator(),
        QuantityRuleValidator(),
        OverlapRuleValidator(allocation_lookup),
        ConfirmationRuleValidator(),
        UndoWindowRuleValidator(),
    ]


# ==== RULE ENGINE ==== #


class RuleEngine:
    """
    Dispatcher evaluating tenant-configured rules against a context.

    Stateless apart from catalog reads; safe to share across concurrent
    requests for different tenants and entities.
    """

    def __init__(self, catalog: RuleCatalog, registry: ValidatorRegistry):
        self.catalog = catalog
        self.registry = registry

    async def validate(self, rule_number: int, ctx: RuleContext) -> None:
        """
        Evaluate one rule for the context's tenant.

        Args:
            rule_number: Rule number to evaluate
            ctx: Validation inputs; ``ctx.tenant_id`` selects the catalog

        Raises:
            RuleViolation: The input breaks an enforced rule
            ValueError: The context carries no tenant
            RuleConfigurationError: The rule value cannot be interpreted
        """
        number = int(rule_number)
        rule = await self.catalog.get(require_tenant(ctx.tenant_id), number)

        if rule is None or not rule.is_enforced:
            rule_evaluations_total.labels(rule_number=str(number), outcome="skipped").inc()
            return

        validator = self.registry.owner(number)
        if validator is None:
            # Catalog rows for numbers this build does not know are ignored
            logger.warning(
                "No validator for configured rule",
                tenant_id=ctx.tenant_id,
                rule_number=number,
            )
            rule_evaluations_total.labels(rule_number=str(number), outcome="skipped").inc()
            return

        with tracer.start_as_current_span("rule_validate") as span:
            span.set_attribute("tenant_id", ctx.tenant_id or 0)
            span.set_attribute("rule_number", number)
            span.set_attribute("validator", validator.name)

            start = time.perf_counter()
            try:
                await validator.validate(rule, ctx)
            except RuleViolation as violation:
                span.set_attribute("outcome", "violated")
                rule_evaluations_total.labels(rule_number=str(number), outcome="violated").inc()
                rule_violations_total.labels(
                    tenant=str(ctx.tenant_id), rule_number=str(number)
                ).inc()
                logger.info(
                    "Rule violated",
                    tenant_id=ctx.tenant_id,
                    rule_number=number,
                    message=violation.message,
                )
                raise
            except RuleConfigurationError as error:
                span.set_attribute("outcome", "misconfigured")
                rule_evaluations_total.labels(
                    rule_number=str(number), outcome="misconfigured"
                ).inc()
                logger.warning(
                    "Rule misconfigured",
                    tenant_id=ctx.tenant_id,
                    rule_number=number,
                    rule_value=rule.rule_value,
                    message=error.message,
                )
                raise
            finally:
                rule_evaluation_duration_seconds.labels(rule_number=str(number)).observe(
                    time.perf_counter() - start
                )

            span.set_attribute("outcome", "passed")
            rule_evaluations_total.labels(rule_number=str(number), outcome="passed").inc()

    async def validate_all(self, rule_numbers: Sequence[int], ctx: RuleContext) -> None:
        """Evaluate rules in order, stopping at the first failure."""
        for number in rule_numbers:
            await self.validate(number, ctx)

    async def get_rule_value(self, tenant_id: int, rule_number: int) -> Optional[str]:
        """Raw value of an enforced rule, or None when the rule is not in force."""
        rule = await self.catalog.get(require_tenant(tenant_id), rule_number)
        if rule is None or not rule.is_enforced:
            return None
        return rule.rule_value

    async def is_rule_active(self, tenant_id: int, rule_number: int) -> bool:
        """True when the rule is configured, applicable and active."""
        rule = await self.catalog.get(require_tenant(tenant_id), rule_number)
        return rule is not None and rule.is_enforced

    async def get_active_rules(self, tenant_id: int) -> List[RuleDefinition]:
        return await self.catalog.active_rules(require_tenant(tenant_id))

    async def get_rules_by_control_point(
        self,
        tenant_id: int,
        control_point: str
    ) -> List[RuleDefinition]:
        return await self.catalog.rules_for_control_point(require_tenant(tenant_id), control_point)


# ==== FACTORY ==== #


def build_rule_engine(
    rule_source: RuleSource,
    allocation_lookup: AllocationLookup,
    validators: Optional[Iterable[RuleValidator]] = None,
) -> RuleEngine:
    """
    Wire catalog, registry and engine.

    Args:
        rule_source: Store the catalog loads tenant rules from
        allocation_lookup: Read-only overlap query for allocation rules
        validators: Override the default validator set (tests)

    Returns:
        RuleEngine: Ready-to-use engine

    Raises:
        RuleRegistryError: Validator ownership is incomplete or ambiguous
    """
    registry = ValidatorRegistry(
        validators if validators is not None else default_validators(allocation_lookup)
    )
    logger.info("Rule engine initialized", rule_numbers=registry.rule_numbers)
    return RuleEngine(RuleCatalog(rule_source), registry)
