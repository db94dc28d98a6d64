"""Port for the lock serialising repair sweeps."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ISweepLock(Protocol):
    """Mutual exclusion between concurrent repair sweeps.

    ``try_acquire`` never waits: a sweep that cannot take the lock reports
    that another sweep is running instead of queueing behind it.
    """

    async def try_acquire(self) -> bool:
        """Take the lock if it is free. Returns whether it was taken."""
        ...

    async def release(self) -> None:
        """Release a lock taken by ``try_acquire``."""
        ...
