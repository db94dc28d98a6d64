"""Observability probe for the audit trigger engine.

Following Domain Oriented Observability, the engine reports what it records
and why it refused to record, without logging calls in its hot path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class AuditTriggerProbe(Protocol):
    """Domain probe for audit trail writes."""

    def capabilities_resolved(self, tables: list[str]) -> None:
        """Record the tables the engine will audit."""
        ...

    def entry_recorded(
        self, table_name: str, operation: str, row_id: str, actor: str
    ) -> None:
        """Record that an audit entry joined the current flush."""
        ...

    def entry_failed(self, table_name: str, operation: str, error: str) -> None:
        """Record that an audit entry could not be written."""
        ...

    def with_context(self, context: ObservationContext) -> AuditTriggerProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAuditTriggerProbe:
    """Default implementation of AuditTriggerProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultAuditTriggerProbe:
        """Create a new probe with observation context bound."""
        return DefaultAuditTriggerProbe(logger=self._logger, context=context)

    def capabilities_resolved(self, tables: list[str]) -> None:
        self._logger.info(
            "audit_capabilities_resolved",
            tables=tables,
            **self._get_context_kwargs(),
        )

    def entry_recorded(
        self, table_name: str, operation: str, row_id: str, actor: str
    ) -> None:
        self._logger.debug(
            "audit_entry_recorded",
            table_name=table_name,
            operation=operation,
            row_id=row_id,
            actor=actor,
            **self._get_context_kwargs(),
        )

    def entry_failed(self, table_name: str, operation: str, error: str) -> None:
        self._logger.error(
            "audit_entry_failed",
            table_name=table_name,
            operation=operation,
            error=error,
            **self._get_context_kwargs(),
        )
