# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for Elina progress tracking.

This module provides distributed tracing setup with OTLP export and automatic
SQLAlchemy instrumentation. Without an OTLP endpoint the no-op tracer stays in
place so local runs and tests need no collector.
"""

from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.settings import settings


# ==== TRACING INITIALIZATION ==== #

def init_tracing(service_name: str, engine: Any | None = None) -> bool:
    """
    Initialize OpenTelemetry tracing with an OTLP exporter.

    Args:
        service_name (str): Name of the service for tracing identification
        engine: Optional SQLAlchemy engine to instrument

    Returns:
        bool: True when an exporter was installed
    """
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT

    # ⚠️ Allow local runs without a collector
    if not endpoint:
        return False

    # --► RESOURCE ATTRIBUTES CONFIGURATION
    resource_attrs = _parse_key_values(settings.OTEL_RESOURCE_ATTRIBUTES)
    resource_attrs["service.name"] = settings.OTEL_SERVICE_NAME or service_name

    # --► TRACER PROVIDER SETUP
    provider = TracerProvider(resource=Resource.create(resource_attrs))
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=_parse_key_values(settings.OTEL_EXPORTER_OTLP_HEADERS)
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    return True


def _parse_key_values(raw: str | None) -> Dict[str, str]:
    """Parse comma-separated ``key=value`` pairs.

    Args:
        raw: Raw environment value

    Returns:
        Dictionary of parsed pairs
    """
    pairs: Dict[str, str] = {}
    if not raw:
        return pairs

    for part in filter(None, map(str.strip, raw.split(","))):
        if "=" in part:
            key, value = part.split("=", 1)
            pairs[key.strip()] = value.strip()

    return pairs


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
