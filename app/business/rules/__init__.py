"""
Per-tenant business rule engine.

Rules are selected by number from a closed set of native validators; each
tenant switches them on, off or parameterizes them through its rule catalog.
"""

from .catalog import RuleCatalog, RuleSource
from .context import AllocationParams, RuleContext, RuleDefinition
from .engine import RuleEngine, ValidatorRegistry, build_rule_engine, default_validators
from .exceptions import (
    ConcurrencyConflict,
    NotFoundError,
    PolicyDisabledError,
    ProgressError,
    RuleAdminError,
    RuleConfigurationError,
    RuleRegistryError,
    RuleViolation,
)
from .numbers import ControlPoint, RuleNumber
from .validators import AllocationLookup, RuleValidator

__all__ = [
    "AllocationLookup",
    "AllocationParams",
    "ConcurrencyConflict",
    "ControlPoint",
    "NotFoundError",
    "PolicyDisabledError",
    "ProgressError",
    "RuleAdminError",
    "RuleCatalog",
    "RuleConfigurationError",
    "RuleContext",
    "RuleDefinition",
    "RuleEngine",
    "RuleNumber",
    "RuleRegistryError",
    "RuleSource",
    "RuleValidator",
    "RuleViolation",
    "ValidatorRegistry",
    "build_rule_engine",
    "default_validators",
]
