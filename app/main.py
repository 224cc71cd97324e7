# ==== ELINA PROGRESS MAIN APPLICATION MODULE ==== #

"""
Application wiring for Elina progress tracking.

This module builds the rule engine and the services that depend on it from
the SQL stores, and manages the startup and shutdown of logging, tracing and
the database engine.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.business.rules.engine import RuleEngine, build_rule_engine
from app.observability.logging import init_logging
from app.observability.tracing import init_tracing
from app.services.audit import AuditLogService, SqlAuditSink
from app.services.confirmation import ConfirmationService
from app.services.gates import MutationGates
from app.services.rule_admin import RuleAdminService
from app.settings import settings
from app.storage.allocation_store import SqlAllocationLookup
from app.storage.confirmation_store import SqlConfirmationStore
from app.storage.db import close_database, get_session_factory, init_database
from app.storage.rule_store import SqlRuleStore


# ==== APPLICATION CONTAINER ==== #


@dataclass
class ProgressApp:
    """Wired services sharing one rule engine and catalog."""

    engine: RuleEngine
    confirmations: ConfirmationService
    rule_admin: RuleAdminService
    gates: MutationGates


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> ProgressApp:
    """
    Build the rule engine and services over the SQL stores.

    Args:
        session_factory: Session factory override; defaults to the global one

    Returns:
        ProgressApp: Ready-to-use services

    Raises:
        RuleRegistryError: Validator wiring is incomplete or ambiguous
    """
    factory = session_factory or get_session_factory()

    rule_store = SqlRuleStore(factory)
    engine = build_rule_engine(rule_store, SqlAllocationLookup(factory))
    audit = AuditLogService(SqlAuditSink(factory))

    return ProgressApp(
        engine=engine,
        confirmations=ConfirmationService(engine, SqlConfirmationStore(factory), audit),
        rule_admin=RuleAdminService(rule_store, engine.catalog, audit),
        gates=MutationGates(engine),
    )


# ==== APPLICATION LIFECYCLE MANAGEMENT ==== #


@asynccontextmanager
async def lifespan(log_dir: Optional[str] = None) -> AsyncGenerator[ProgressApp, None]:
    """
    Startup and shutdown around a block of application work.

    Yields:
        ProgressApp: Services bound to the global database engine
    """
    # --► STARTUP SEQUENCE
    init_logging(settings.LOG_LEVEL, log_dir if log_dir is not None else settings.LOG_DIR)
    db_engine = init_database()
    init_tracing(settings.SERVICE_NAME, db_engine)

    try:
        yield create_app()
    finally:
        # --► SHUTDOWN SEQUENCE
        await close_database()
