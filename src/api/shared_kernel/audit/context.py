"""Acting principal for audit entries.

The actor is carried in a context variable so that it follows the current
request or console command through every awaited call without being passed
down to repositories explicitly.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

SYSTEM_ACTOR = "system"

_actor: ContextVar[str] = ContextVar("audit_actor", default=SYSTEM_ACTOR)


def current_actor() -> str:
    """Return the principal audit entries are attributed to."""
    return _actor.get()


@contextmanager
def audit_actor(actor: str | None) -> Iterator[str]:
    """Attribute audit entries written inside the block to ``actor``.

    ``None`` or a blank string keeps the enclosing actor.
    """
    if not actor or not actor.strip():
        yield _actor.get()
        return

    token = _actor.set(actor.strip())
    try:
        yield actor.strip()
    finally:
        _actor.reset(token)
