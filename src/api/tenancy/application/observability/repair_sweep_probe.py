"""Protocol for repair sweep observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class RepairSweepProbe(Protocol):
    """Domain probe for the repair sweep."""

    def sweep_started(self) -> None:
        """Record that the sweep took the lock and started scanning."""
        ...

    def sweep_already_running(self) -> None:
        """Record that another sweep held the lock."""
        ...

    def repair_applied(self, kind: str, row_id: str) -> None:
        """Record that a repair was written."""
        ...

    def repair_skipped(self, kind: str, row_id: str) -> None:
        """Record that a repair's guard no longer held at write time."""
        ...

    def repair_failed(self, kind: str, row_id: str, error: str) -> None:
        """Record that a repair raised."""
        ...

    def finding_recorded(self, kind: str, tenant_ids: tuple[str, ...]) -> None:
        """Record drift that the sweep reports instead of repairing."""
        ...

    def sweep_finished(
        self, repairs: int, skipped: int, findings: int, errors: int
    ) -> None:
        """Record the totals of a completed sweep."""
        ...

    def sweep_cancelled(self, repairs: int) -> None:
        """Record that the sweep was cancelled part way."""
        ...

    def with_context(self, context: ObservationContext) -> RepairSweepProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultRepairSweepProbe:
    """Default implementation of RepairSweepProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultRepairSweepProbe:
        """Create a new probe with observation context bound."""
        return DefaultRepairSweepProbe(logger=self._logger, context=context)

    def sweep_started(self) -> None:
        self._logger.info("repair_sweep_started", **self._get_context_kwargs())

    def sweep_already_running(self) -> None:
        self._logger.warning(
            "repair_sweep_already_running", **self._get_context_kwargs()
        )

    def repair_applied(self, kind: str, row_id: str) -> None:
        self._logger.info(
            "repair_applied",
            kind=kind,
            row_id=row_id,
            **self._get_context_kwargs(),
        )

    def repair_skipped(self, kind: str, row_id: str) -> None:
        self._logger.info(
            "repair_skipped",
            kind=kind,
            row_id=row_id,
            **self._get_context_kwargs(),
        )

    def repair_failed(self, kind: str, row_id: str, error: str) -> None:
        self._logger.error(
            "repair_failed",
            kind=kind,
            row_id=row_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def finding_recorded(self, kind: str, tenant_ids: tuple[str, ...]) -> None:
        self._logger.warning(
            "repair_sweep_finding",
            kind=kind,
            tenant_ids=list(tenant_ids),
            **self._get_context_kwargs(),
        )

    def sweep_finished(
        self, repairs: int, skipped: int, findings: int, errors: int
    ) -> None:
        self._logger.info(
            "repair_sweep_finished",
            repairs=repairs,
            skipped=skipped,
            findings=findings,
            errors=errors,
            **self._get_context_kwargs(),
        )

    def sweep_cancelled(self, repairs: int) -> None:
        self._logger.warning(
            "repair_sweep_cancelled",
            repairs=repairs,
            **self._get_context_kwargs(),
        )
