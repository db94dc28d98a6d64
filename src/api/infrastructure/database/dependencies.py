"""Database dependency injection for FastAPI and the operator console.

Write and read engines are created lazily, once per process, each with its
own sessionmaker. Sessions never auto-commit; callers open transactions with
``async with session.begin()``.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_read_engine, create_write_engine
from infrastructure.observability import DefaultConnectionProbe
from infrastructure.settings import DatabaseSettings, get_database_settings

_probe = DefaultConnectionProbe()


class _EngineSlot:
    """One lazily created engine and the sessionmaker bound to it."""

    def __init__(self, factory: Callable[[DatabaseSettings], AsyncEngine]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self.engine: AsyncEngine | None = None
        self.sessionmaker: async_sessionmaker[AsyncSession] | None = None

    def ensure(self) -> AsyncEngine:
        if self.engine is None:
            with self._lock:
                if self.engine is None:
                    settings = get_database_settings()
                    engine = self._factory(settings)
                    self.sessionmaker = async_sessionmaker(
                        engine, expire_on_commit=False, class_=AsyncSession
                    )
                    self.engine = engine
                    _probe.connection_established(
                        host=engine.url.host or engine.url.get_backend_name(),
                        database=engine.url.database or "",
                    )
        return self.engine

    def sessions(self) -> async_sessionmaker[AsyncSession]:
        self.ensure()
        assert self.sessionmaker is not None
        return self.sessionmaker

    async def dispose(self) -> None:
        engine, self.engine, self.sessionmaker = self.engine, None, None
        if engine is not None:
            await engine.dispose()
            _probe.connection_closed()


_write = _EngineSlot(create_write_engine)
_read = _EngineSlot(create_read_engine)


def get_write_engine() -> AsyncEngine:
    """Get the write database engine (singleton)."""
    return _write.ensure()


def get_read_engine() -> AsyncEngine:
    """Get the read database engine (singleton).

    Kept separate from the write engine so it can point at a replica.
    """
    return _read.ensure()


def get_write_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the write sessionmaker, initializing the engine if needed."""
    return _write.sessions()


async def get_write_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a write session for mutations (FastAPI dependency).

    Usage:
        @router.post("/tenants")
        async def create_tenant(
            session: AsyncSession = Depends(get_write_session)
        ):
            async with session.begin():
                session.add(tenant)

    Yields:
        AsyncSession for database operations
    """
    async with _write.sessions()() as session:
        yield session


async def get_read_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session on the read engine (FastAPI dependency)."""
    async with _read.sessions()() as session:
        yield session


@asynccontextmanager
async def open_write_session() -> AsyncIterator[AsyncSession]:
    """Open a write session outside of a request (operator console, jobs)."""
    async with _write.sessions()() as session:
        yield session


async def close_database_connections() -> None:
    """Dispose both engines.

    Called on application shutdown and at the end of a console run; the
    next getter call creates fresh engines.
    """
    await _write.dispose()
    await _read.dispose()
