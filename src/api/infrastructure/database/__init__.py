"""Database infrastructure - shared engine and session primitives."""

from infrastructure.database.engines import (
    build_async_url,
    create_read_engine,
    create_write_engine,
)
from infrastructure.database.models import Base, TimestampMixin, as_utc, utc_now

__all__ = [
    "Base",
    "TimestampMixin",
    "as_utc",
    "build_async_url",
    "create_read_engine",
    "create_write_engine",
    "utc_now",
]
