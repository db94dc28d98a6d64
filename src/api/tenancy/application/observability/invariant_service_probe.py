"""Protocol for invariant verification observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class InvariantServiceProbe(Protocol):
    """Domain probe for invariant verification."""

    def invariants_checked(self, total: int, blocking: int) -> None:
        """Record the outcome of a verification run."""
        ...

    def with_context(self, context: ObservationContext) -> InvariantServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultInvariantServiceProbe:
    """Default implementation of InvariantServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(
        self, context: ObservationContext
    ) -> DefaultInvariantServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultInvariantServiceProbe(logger=self._logger, context=context)

    def invariants_checked(self, total: int, blocking: int) -> None:
        log = self._logger.warning if blocking else self._logger.info
        log(
            "invariants_checked",
            total=total,
            blocking=blocking,
            **self._get_context_kwargs(),
        )
