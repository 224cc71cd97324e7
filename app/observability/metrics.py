# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for monitoring Elina progress tracking.

This module provides metrics for rule evaluation, rule catalog caching,
confirmation and undo operations, concurrency conflicts and audit emission.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    generate_latest,
)


# ==== RULE ENGINE METRICS ==== #

rule_evaluations_total = Counter(
    "elina_rule_evaluations_total",
    "Total rule evaluations by rule number and outcome",
    ["rule_number", "outcome"]  # outcome: passed, violated, skipped, misconfigured
)

rule_violations_total = Counter(
    "elina_rule_violations_total",
    "Total rule violations by tenant and rule number",
    ["tenant", "rule_number"]
)

rule_evaluation_duration_seconds = Histogram(
    "elina_rule_evaluation_duration_seconds",
    "Time spent evaluating a single rule in seconds",
    ["rule_number"]
)


# ==== RULE CATALOG METRICS ==== #

rule_catalog_hits_total = Counter(
    "elina_rule_catalog_hits_total",
    "Rule catalog snapshot cache hits"
)

rule_catalog_misses_total = Counter(
    "elina_rule_catalog_misses_total",
    "Rule catalog snapshot cache misses"
)

rule_catalog_reloads_total = Counter(
    "elina_rule_catalog_reloads_total",
    "Rule catalog snapshot reloads by tenant",
    ["tenant"]
)

rule_catalog_tenants = Gauge(
    "elina_rule_catalog_tenants",
    "Number of tenants with a cached rule snapshot"
)


# ==== CONFIRMATION METRICS ==== #

confirmation_operations_total = Counter(
    "elina_confirmation_operations_total",
    "Confirmation ledger operations by action and outcome",
    ["action", "entity_type", "outcome"]  # action: confirm, undo
)

confirmation_duration_seconds = Histogram(
    "elina_confirmation_duration_seconds",
    "Confirmation and undo latency in seconds",
    ["action"]
)

concurrency_conflicts_total = Counter(
    "elina_concurrency_conflicts_total",
    "Optimistic or unique-constraint conflicts on the lock pointer",
    ["operation"]
)


# ==== DATABASE METRICS ==== #

db_sessions_active = Gauge(
    "elina_db_sessions_active",
    "Database sessions currently open"
)


# ==== AUDIT METRICS ==== #

audit_events_total = Counter(
    "elina_audit_events_total",
    "Audit events emitted by table and action",
    ["table", "action"]
)

audit_failures_total = Counter(
    "elina_audit_failures_total",
    "Audit emissions that failed and were dropped",
    ["table", "error_type"]
)


# ==== RETRY METRICS ==== #

retry_attempts_total = Counter(
    "elina_retry_attempts_total",
    "Total retry attempts",
    ["service", "operation", "attempt"]
)

retry_failures_total = Counter(
    "elina_retry_failures_total",
    "Total retry failures after all attempts",
    ["service", "operation", "error_type"]
)


# ==== EXPOSITION ==== #

def render_metrics() -> bytes:
    """Render the default registry in Prometheus text format."""
    return generate_latest(REGISTRY)
