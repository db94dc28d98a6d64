"""Integration test fixtures for PostgreSQL.

These fixtures require a running PostgreSQL instance; connection settings
come from the usual ``TENANCY_DB_*`` environment variables. Tests are
skipped when the database cannot be reached.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import pytest
import pytest_asyncio
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.audit import AuditTriggerEngine
from infrastructure.audit.models import AuditLogModel  # noqa: F401
from infrastructure.database.engines import create_write_engine
from infrastructure.database.models import Base
from infrastructure.settings import DatabaseSettings, ProvisioningSettings
from tenancy.dependencies import TenancyServices, build_services
from tenancy.infrastructure import models  # noqa: F401
from tenancy.infrastructure.locks import build_sweep_lock

AUDITED_TABLES = ("tenants", "profiles", "provisioning_records", "access_roles")

ServicesFactory = Callable[[], AbstractAsyncContextManager[TenancyServices]]


@pytest.fixture
def provisioning_settings() -> ProvisioningSettings:
    return ProvisioningSettings(
        audit_sensitive_tables=AUDITED_TABLES,
        sweep_lock_key=7_310_452_119,
    )


@pytest_asyncio.fixture
async def pg_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine over a freshly created schema."""
    engine = create_write_engine(DatabaseSettings())
    if engine.dialect.name != "postgresql":
        await engine.dispose()
        pytest.skip("TENANCY_DB_URL does not point at PostgreSQL")

    try:
        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.drop_all)
            await connection.run_sync(Base.metadata.create_all)
    except (OSError, OperationalError, DBAPIError) as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not reachable: {e}")

    yield engine

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def pg_sessionmaker(pg_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(pg_engine, expire_on_commit=False)


@pytest.fixture
def pg_services_factory(
    pg_engine: AsyncEngine,
    pg_sessionmaker: async_sessionmaker[AsyncSession],
    provisioning_settings: ProvisioningSettings,
) -> ServicesFactory:
    """Open tenancy services over their own audited session."""
    audit_engine = AuditTriggerEngine.from_metadata(Base.metadata, AUDITED_TABLES)

    @asynccontextmanager
    async def open_services() -> AsyncIterator[TenancyServices]:
        async with pg_sessionmaker() as session:
            audit_engine.attach(session)
            lock = build_sweep_lock(pg_engine, provisioning_settings.sweep_lock_key)
            yield build_services(session, lock, provisioning_settings)

    return open_services
