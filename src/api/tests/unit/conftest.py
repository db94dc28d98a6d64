"""Unit test fixtures.

Store-backed tests run against a file-backed SQLite database through
aiosqlite. A file rather than ``:memory:`` lets several sessions (and so
several connections) see the same data, which the concurrency tests need.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from infrastructure.audit import AuditTriggerEngine
from infrastructure.audit.models import AuditLogModel  # noqa: F401
from infrastructure.database.models import Base
from infrastructure.settings import ProvisioningSettings
from tenancy.dependencies import TenancyServices, build_services
from tenancy.infrastructure import models  # noqa: F401
from tenancy.infrastructure.locks import InProcessSweepLock

AUDITED_TABLES = ("tenants", "profiles", "provisioning_records", "access_roles")

ServicesFactory = Callable[[], AbstractAsyncContextManager[TenancyServices]]


@pytest.fixture
def mock_session() -> Mock:
    """Mock AsyncSession whose begin() works as an async context manager."""
    session = Mock(spec=AsyncSession)

    ctx_manager = AsyncMock()
    ctx_manager.__aenter__ = AsyncMock(return_value=None)
    ctx_manager.__aexit__ = AsyncMock(return_value=None)

    session.begin = Mock(return_value=ctx_manager)
    return session


@pytest.fixture
def database_url(tmp_path) -> str:
    """URL of a fresh SQLite database file for one test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'tenancy.db'}"


@pytest_asyncio.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Engine over a database with every table created."""
    engine = create_async_engine(database_url, connect_args={"timeout": 30})
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def audit_engine() -> AuditTriggerEngine:
    """Audit engine over the application schema."""
    return AuditTriggerEngine.from_metadata(Base.metadata, AUDITED_TABLES)


@pytest_asyncio.fixture
async def session(
    sessionmaker: async_sessionmaker[AsyncSession],
    audit_engine: AuditTriggerEngine,
) -> AsyncGenerator[AsyncSession, None]:
    """Audited session for repository tests."""
    async with sessionmaker() as session:
        audit_engine.attach(session)
        yield session


@pytest.fixture
def provisioning_settings() -> ProvisioningSettings:
    return ProvisioningSettings(
        audit_sensitive_tables=AUDITED_TABLES,
        administrator_role="administrator",
        stale_pending_after_seconds=3600,
    )


@pytest.fixture
def sweep_lock() -> InProcessSweepLock:
    """A sweep lock private to the test."""
    return InProcessSweepLock()


@pytest.fixture
def services_factory(
    sessionmaker: async_sessionmaker[AsyncSession],
    audit_engine: AuditTriggerEngine,
    sweep_lock: InProcessSweepLock,
    provisioning_settings: ProvisioningSettings,
) -> ServicesFactory:
    """Open tenancy services over their own audited session.

    Every call opens a new session, as a new request or console run would.
    """

    @asynccontextmanager
    async def open_services() -> AsyncIterator[TenancyServices]:
        async with sessionmaker() as session:
            audit_engine.attach(session)
            yield build_services(session, sweep_lock, provisioning_settings)

    return open_services
