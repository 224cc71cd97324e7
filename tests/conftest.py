# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures and configuration.

Unit tests run the rule engine and confirmation service over in-memory
collaborators. Integration tests run the SQL stores against a throwaway
SQLite database file through aiosqlite.
"""

import os

import pytest
import pytest_asyncio


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any app modules
os.environ.update({
    "APP_ENV": "test",
    "DATABASE_URL": "sqlite+aiosqlite://",
    "LOG_LEVEL": "WARNING",
    "CONFIRMATION_MAX_ATTEMPTS": "3",
    "CONFIRMATION_RETRY_BASE_DELAY": "0",
})

# Now import app modules after environment is set
from app.business.rules.engine import build_rule_engine
from app.resilience.retry_policies import create_confirmation_retry_policy
from app.services.audit import AuditLogService
from app.services.confirmation import ConfirmationService
from app.services.gates import MutationGates
from tests.factories.data_factories import EntityFactory, RuleFactory
from tests.factories.fakes import (
    InMemoryAllocationLookup,
    InMemoryConfirmationStore,
    InMemoryRuleSource,
    RecordingAuditSink,
)


TENANT_ID = 1
USER_ID = 42


# ==== FACTORY FIXTURES ==== #


@pytest.fixture
def rule_factory():
    return RuleFactory(tenant_id=TENANT_ID)


@pytest.fixture
def entity_factory():
    return EntityFactory(tenant_id=TENANT_ID)


# ==== RULE ENGINE FIXTURES ==== #


@pytest.fixture
def rule_source():
    return InMemoryRuleSource()


@pytest.fixture
def allocation_lookup():
    return InMemoryAllocationLookup()


@pytest.fixture
def rule_engine(rule_source, allocation_lookup):
    """Engine with the full validator set over in-memory rules."""
    return build_rule_engine(rule_source, allocation_lookup)


@pytest.fixture
def gates(rule_engine):
    return MutationGates(rule_engine)


# ==== CONFIRMATION FIXTURES ==== #


@pytest.fixture
def confirmation_store():
    return InMemoryConfirmationStore()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def confirmation_service(rule_engine, confirmation_store, audit_sink):
    """Confirmation service retrying lost races without delay."""
    return ConfirmationService(
        rule_engine,
        confirmation_store,
        AuditLogService(audit_sink),
        create_confirmation_retry_policy(max_attempts=3, base_delay=0.0),
    )


# ==== DATABASE FIXTURES ==== #


@pytest_asyncio.fixture
async def sql_session_factory(tmp_path):
    """
    Session factory bound to a fresh SQLite database with all tables.

    Each test gets its own database file so units of work in separate
    sessions see each other's commits.
    """
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from app.storage.db import Base
    import app.storage.models  # noqa: F401  registers tables on Base.metadata

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'elina.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    yield factory
    await engine.dispose()
