"""Sweep and owner lock implementations.

PostgreSQL deployments serialise sweeps across processes with a session
level advisory lock held on a dedicated connection. Other dialects (SQLite
in local runs and tests) fall back to a process-local asyncio lock.

Ownership writes take a transaction level advisory lock per owner identity,
in the two-key lock space so they never collide with the sweep key.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import ClassVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from tenancy.ports.locks import ISweepLock


class PostgresAdvisorySweepLock(ISweepLock):
    """Sweep lock backed by ``pg_try_advisory_lock``.

    The lock belongs to the database session that took it, so the
    connection is checked out for as long as the lock is held and released
    back to the pool afterwards.
    """

    def __init__(self, engine: AsyncEngine, key: int) -> None:
        self._engine = engine
        self._key = key
        self._connection: AsyncConnection | None = None

    async def try_acquire(self) -> bool:
        if self._connection is not None:
            return False

        connection = await self._engine.connect()
        try:
            result = await connection.execute(
                text("SELECT pg_try_advisory_lock(:key)"), {"key": self._key}
            )
            acquired = bool(result.scalar())
        except BaseException:
            await connection.close()
            raise

        if not acquired:
            await connection.close()
            return False

        self._connection = connection
        return True

    async def release(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.execute(
                text("SELECT pg_advisory_unlock(:key)"), {"key": self._key}
            )
        finally:
            await connection.close()


class InProcessSweepLock(ISweepLock):
    """Sweep lock for a single process, keyed like the advisory lock."""

    _shared: ClassVar[dict[int, InProcessSweepLock]] = {}

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @classmethod
    def for_key(cls, key: int) -> InProcessSweepLock:
        """Return the process-wide lock for ``key``."""
        if key not in cls._shared:
            cls._shared[key] = cls()
        return cls._shared[key]

    async def try_acquire(self) -> bool:
        if self._lock.locked():
            return False
        await self._lock.acquire()
        return True

    async def release(self) -> None:
        if self._lock.locked():
            self._lock.release()


def build_sweep_lock(engine: AsyncEngine, key: int) -> ISweepLock:
    """Pick the sweep lock matching the engine's dialect."""
    if engine.dialect.name == "postgresql":
        return PostgresAdvisorySweepLock(engine, key)
    return InProcessSweepLock.for_key(key)


OWNER_LOCK_NAMESPACE = 0x7E4A


def owner_lock_key(identity_id: str) -> int:
    """Stable signed 32-bit key for one owner identity."""
    digest = hashlib.blake2b(identity_id.encode(), digest_size=4).digest()
    return int.from_bytes(digest, "big", signed=True)


async def lock_owner_for_transaction(session: AsyncSession, identity_id: str) -> None:
    """Block until no other transaction holds the lock for ``identity_id``.

    The PostgreSQL lock is released when the session's transaction commits
    or rolls back. SQLite admits one writer at a time, so nothing is taken.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
        {"namespace": OWNER_LOCK_NAMESPACE, "key": owner_lock_key(identity_id)},
    )
