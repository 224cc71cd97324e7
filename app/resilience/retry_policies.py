"""Retry policies for ledger writes that may lose an optimistic race."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

from app.business.rules.exceptions import ConcurrencyConflict
from app.observability.metrics import retry_attempts_total, retry_failures_total
from app.observability.tracing import get_tracer
from app.settings import settings

tracer = get_tracer(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True
    reraise: bool = True


class RetryPolicy(ABC):
    """Abstract base class for retry policies."""

    def __init__(self, config: RetryConfig, service_name: str = "unknown"):
        self.config = config
        self.service_name = service_name

    @abstractmethod
    def get_tenacity_decorator(self, operation_name: str = "unknown"):
        """Get tenacity decorator for this policy."""


class ExponentialBackoffPolicy(RetryPolicy):
    """Exponential backoff retry policy."""

    def __init__(
        self,
        config: RetryConfig,
        service_name: str = "unknown",
        retryable_exceptions: tuple = (ConcurrencyConflict,)
    ):
        super().__init__(config, service_name)
        self.retryable_exceptions = retryable_exceptions

    def get_tenacity_decorator(self, operation_name: str = "unknown"):
        """Get tenacity decorator with exponential backoff.

        With ``reraise`` set, the last exception escapes unchanged once the
        attempts are exhausted instead of being wrapped in ``RetryError``.
        """
        wait_strategy = wait_exponential(
            multiplier=self.config.base_delay,
            max=self.config.max_delay,
            exp_base=self.config.exponential_base
        )

        if self.config.jitter:
            wait_strategy = wait_random_exponential(
                multiplier=self.config.base_delay,
                max=self.config.max_delay
            )

        return retry(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_strategy,
            retry=retry_if_exception_type(self.retryable_exceptions),
            before_sleep=self._before_sleep_callback(operation_name),
            after=self._after_callback(operation_name),
            reraise=self.config.reraise,
        )

    def _before_sleep_callback(self, operation_name: str):
        """Callback before sleep between retries."""
        def callback(retry_state):
            attempt = retry_state.attempt_number
            retry_attempts_total.labels(
                service=self.service_name,
                operation=operation_name,
                attempt=str(attempt)
            ).inc()

            with tracer.start_as_current_span("retry_attempt") as span:
                span.set_attribute("service", self.service_name)
                span.set_attribute("operation", operation_name)
                span.set_attribute("attempt", attempt)
                span.set_attribute("exception", str(retry_state.outcome.exception()))

        return callback

    def _after_callback(self, operation_name: str):
        """Callback after a failed attempt that stops the retry loop."""
        def callback(retry_state):
            if retry_state.attempt_number < self.config.max_attempts:
                return
            if retry_state.outcome.failed:
                exception = retry_state.outcome.exception()
                retry_failures_total.labels(
                    service=self.service_name,
                    operation=operation_name,
                    error_type=type(exception).__name__
                ).inc()

        return callback


def create_confirmation_retry_policy(
    max_attempts: int | None = None,
    base_delay: float | None = None,
) -> ExponentialBackoffPolicy:
    """Retry policy for confirm and undo against lock pointer races."""
    config = RetryConfig(
        max_attempts=max_attempts or settings.CONFIRMATION_MAX_ATTEMPTS,
        base_delay=settings.CONFIRMATION_RETRY_BASE_DELAY if base_delay is None else base_delay,
        max_delay=settings.CONFIRMATION_RETRY_MAX_DELAY,
    )
    return ExponentialBackoffPolicy(
        config,
        service_name="confirmation",
        retryable_exceptions=(ConcurrencyConflict,)
    )
