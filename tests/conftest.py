"""Test fixtures and configuration."""

import logging
import os
import sys
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set ENVIRONMENT for pydantic settings
os.environ["ENVIRONMENT"] = "testing"

from bankrec.database import Base, set_test_session_maker  # noqa: E402
from bankrec.services.auto_matching import ReconciliationWorkflow  # noqa: E402
from bankrec.services.ledger_store import ReconciliationStore  # noqa: E402
from bankrec.services.scoring import DEFAULT_MATCHING_CONFIG  # noqa: E402


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a throwaway SQLite database with the full schema.

    A file database (rather than :memory:) lets every store session see the
    same data, the way separate pooled connections would in production.
    """
    from bankrec import models  # noqa: F401

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reconciliation.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    """Session used by tests to seed and inspect data; commit to publish."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def store(session_maker) -> ReconciliationStore:
    return ReconciliationStore(session_maker)


@pytest.fixture
def workflow(store) -> ReconciliationWorkflow:
    return ReconciliationWorkflow(store, DEFAULT_MATCHING_CONFIG)


@pytest.fixture
def account_id():
    return uuid4()


@pytest_asyncio.fixture
async def client(session_maker, workflow):
    """HTTP client bound to the test database."""
    from bankrec.main import app
    from bankrec.routers.reconciliation import get_workflow

    previous = set_test_session_maker(session_maker)
    app.dependency_overrides[get_workflow] = lambda: workflow
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
            yield http_client
    finally:
        app.dependency_overrides.clear()
        set_test_session_maker(previous)
