# ==== STRUCTURED LOGGING WITH LOGURU ==== #

"""
Structured logging with loguru for Elina progress tracking.

This module provides structured logging with JSON formatting, tenant context,
log rotation and OpenTelemetry integration using loguru for the rule engine,
the confirmation workflow and the rule administration commands.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace
from opentelemetry.instrumentation.logging import LoggingInstrumentor


# ==== LOGGING INITIALIZATION ==== #


class InterceptHandler(logging.Handler):
    """Route standard library log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def init_logging(level: str = "INFO", log_dir: str | None = "logs") -> None:
    """Initialize structured logging with loguru.

    Provides JSON formatting, log rotation, compression, and OpenTelemetry
    integration. File sinks are skipped when ``log_dir`` is None.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotated log files
    """
    # Remove default loguru handler
    logger.remove()

    # Console handler with JSON formatting for production
    logger.add(
        sys.stdout,
        format="{message}",
        serialize=True,
        level=level.upper(),
        enqueue=True,
        colorize=False,
        backtrace=True,
        diagnose=False,
    )

    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(exist_ok=True)

        logger.add(
            logs_dir / "elina_{time:YYYY-MM-DD}.log",
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            serialize=True,
            level="DEBUG",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

        # Rule violations are logged at INFO; only real failures land here
        logger.add(
            logs_dir / "elina_errors_{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            serialize=True,
            level="ERROR",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    # Replace standard logging handlers
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.INFO)

    try:
        LoggingInstrumentor().instrument(set_logging_format=False)
    except Exception as e:
        logger.warning(f"Failed to setup OpenTelemetry logging: {e}")

    logger.info("Structured logging initialized with loguru", level=level)


class ContextualLogger:
    """Logger using loguru with automatic context injection.

    Binds the logger name plus the active trace and span identifiers to every
    record so that rule evaluations can be correlated with their spans.
    """

    def __init__(self, name: str):
        """Initialize contextual logger.

        Args:
            name: Logger name (typically __name__)
        """
        self.name = name
        self.logger = logger.bind(logger_name=name)

    def _add_context(self, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """Add contextual information to log record.

        Args:
            extra: Additional fields to include

        Returns:
            Dictionary with context fields
        """
        context = {"logger_name": self.name}

        if extra:
            context.update(extra)

        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            if span_context.is_valid:
                context['trace_id'] = format(span_context.trace_id, '032x')
                context['span_id'] = format(span_context.span_id, '016x')

        return context

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message with context."""
        self.logger.bind(**self._add_context(kwargs)).debug(msg)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log info message with context."""
        self.logger.bind(**self._add_context(kwargs)).info(msg)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log warning message with context."""
        self.logger.bind(**self._add_context(kwargs)).warning(msg)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log error message with context."""
        self.logger.bind(**self._add_context(kwargs)).error(msg)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with full traceback and context."""
        self.logger.bind(**self._add_context(kwargs)).exception(msg)


# ==== LOGGING UTILITIES ==== #

def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(name)


def log_business_event(event_type: str, tenant: str, **context: Any) -> None:
    """Log business events with structured data.

    Args:
        event_type: Type of business event (e.g. ``wbs_confirmed``)
        tenant: Tenant identifier
        **context: Additional business context
    """
    logger.bind(
        event_type=event_type,
        tenant=tenant,
        business_event=True,
        **context
    ).info(f"Business event: {event_type}")
