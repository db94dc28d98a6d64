"""Domain probe for tenancy store operations.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events of the tenancy stores: rows written, guarded
updates that no longer applied, and uniqueness conflicts reported by the
database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TenancyRepositoryProbe(Protocol):
    """Domain probe shared by the tenancy repositories."""

    def row_written(self, table: str, row_id: str, operation: str) -> None:
        """Record that a row was inserted or updated."""
        ...

    def guarded_update_skipped(self, table: str, row_id: str, reason: str) -> None:
        """Record that a guarded update found its guard no longer true."""
        ...

    def concurrent_modification(self, table: str, row_id: str) -> None:
        """Record that a row changed between read and guarded write."""
        ...

    def uniqueness_conflict(self, table: str, key: str) -> None:
        """Record that the store rejected a duplicate key."""
        ...

    def identity_created(self, identity_id: str) -> None:
        """Record that the identity store registered a new identity."""
        ...

    def with_context(self, context: ObservationContext) -> TenancyRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenancyRepositoryProbe:
    """Default implementation of TenancyRepositoryProbe using structlog."""

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
    ) -> DefaultTenancyRepositoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenancyRepositoryProbe(logger=self._logger, context=context)

    def row_written(self, table: str, row_id: str, operation: str) -> None:
        self._logger.debug(
            "tenancy_row_written",
            table=table,
            row_id=row_id,
            operation=operation,
            **self._get_context_kwargs(),
        )

    def guarded_update_skipped(self, table: str, row_id: str, reason: str) -> None:
        self._logger.info(
            "tenancy_guarded_update_skipped",
            table=table,
            row_id=row_id,
            reason=reason,
            **self._get_context_kwargs(),
        )

    def concurrent_modification(self, table: str, row_id: str) -> None:
        self._logger.warning(
            "tenancy_concurrent_modification",
            table=table,
            row_id=row_id,
            **self._get_context_kwargs(),
        )

    def uniqueness_conflict(self, table: str, key: str) -> None:
        self._logger.warning(
            "tenancy_uniqueness_conflict",
            table=table,
            key=key,
            **self._get_context_kwargs(),
        )

    def identity_created(self, identity_id: str) -> None:
        self._logger.info(
            "identity_created",
            identity_id=identity_id,
            **self._get_context_kwargs(),
        )
