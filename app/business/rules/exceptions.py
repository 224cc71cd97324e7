# ==== RULE ENGINE AND LEDGER ERRORS ==== #

"""
Error taxonomy for the rule engine and the confirmation ledger.

Callers distinguish user-correctable policy violations from configuration
problems, missing records and lost concurrency races by exception type.
"""

from typing import Optional


class ProgressError(Exception):
    """Base class for all domain errors raised by this package."""


class RuleViolation(ProgressError):
    """
    A business rule rejected the requested change.

    Carries the rule number, a user-facing message and an optional hint that
    explains how to correct the input.
    """

    def __init__(self, rule_number: int, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.rule_number = int(rule_number)
        self.message = message
        self.hint = hint

    def to_dict(self) -> dict:
        """Serialize for API error payloads and audit details."""
        return {
            "rule_number": self.rule_number,
            "message": self.message,
            "hint": self.hint,
        }

    def __repr__(self) -> str:
        return f"RuleViolation(rule_number={self.rule_number}, message={self.message!r})"


class RuleConfigurationError(ProgressError):
    """A rule is configured with a value its validator cannot use."""

    def __init__(self, rule_number: int, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.rule_number = int(rule_number)
        self.message = message
        self.hint = hint


class PolicyDisabledError(RuleConfigurationError):
    """A feature gated by a rule value is unavailable because the rule is unset."""


class RuleRegistryError(ProgressError):
    """Validator wiring is inconsistent; raised once at startup."""


class RuleAdminError(ProgressError):
    """Invalid rule administration request."""


class NotFoundError(ProgressError):
    """Referenced entity or record does not exist for the tenant."""

    def __init__(self, entity: str, identifier: object):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class ConcurrencyConflict(ProgressError):
    """A concurrent writer changed the lock pointer first."""
