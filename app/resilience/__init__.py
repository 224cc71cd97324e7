"""
Resilience patterns for ledger mutations.

Currently provides tenacity-based retry with exponential backoff for
operations that can lose an optimistic concurrency race.
"""

from .retry_policies import (
    ExponentialBackoffPolicy,
    RetryConfig,
    RetryPolicy,
    create_confirmation_retry_policy,
)

__all__ = [
    "ExponentialBackoffPolicy",
    "RetryConfig",
    "RetryPolicy",
    "create_confirmation_retry_policy",
]
