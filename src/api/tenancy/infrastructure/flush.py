"""Flush helpers translating store errors into tenancy port errors."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tenancy.infrastructure.observability import TenancyRepositoryProbe
from tenancy.ports.exceptions import ConcurrentModificationError, ConflictError


async def flush_guarded(
    session: AsyncSession,
    probe: TenancyRepositoryProbe,
    table: str,
    row_id: str,
) -> None:
    """Flush a version-checked update.

    Raises:
        ConcurrentModificationError: If the UPDATE matched no row because the
            row's version moved on since it was read
    """
    try:
        await session.flush()
    except StaleDataError as e:
        probe.concurrent_modification(table, row_id)
        raise ConcurrentModificationError(
            f"{table} row {row_id} changed while it was being updated"
        ) from e


async def flush_unique(
    session: AsyncSession,
    probe: TenancyRepositoryProbe,
    table: str,
    key: str,
    message: str,
) -> None:
    """Flush an insert whose only possible integrity failure is a duplicate.

    Raises:
        ConflictError: If the store rejected the row as a duplicate
    """
    try:
        await session.flush()
    except IntegrityError as e:
        probe.uniqueness_conflict(table, key)
        raise ConflictError(message) from e
