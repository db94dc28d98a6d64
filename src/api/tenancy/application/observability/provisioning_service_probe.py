"""Protocol for provisioning service observability.

Defines the interface for domain probes that capture the steps of the
provisioning saga and owner reassignments.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class ProvisioningServiceProbe(Protocol):
    """Domain probe for provisioning operations."""

    def provisioning_started(self, slug: str, owner_email: str) -> None:
        """Record that a provisioning request passed validation."""
        ...

    def idempotent_replay(self, idempotency_key: str, ledger_id: str) -> None:
        """Record that a completed attempt was returned for a repeated key."""
        ...

    def slug_conflict(self, slug: str) -> None:
        """Record that the slug is already used by an active tenant."""
        ...

    def identity_resolved(self, identity_id: str, created: bool) -> None:
        """Record which identity will own the tenant."""
        ...

    def ledger_opened(self, ledger_id: str, tenant_id: str) -> None:
        """Record that a pending ledger entry was opened."""
        ...

    def profile_resolved(self, profile_id: str, action: str) -> None:
        """Record whether the owner profile was found, bound or created."""
        ...

    def provisioning_completed(
        self, tenant_id: str, identity_id: str, ledger_id: str
    ) -> None:
        """Record that every saga step succeeded."""
        ...

    def provisioning_failed(self, ledger_id: str, error: str) -> None:
        """Record that a saga step failed and the ledger entry was closed."""
        ...

    def ledger_close_failed(self, ledger_id: str, error: str) -> None:
        """Record that the ledger entry of a failed attempt stayed pending."""
        ...

    def owner_reassigned(
        self, tenant_id: str, previous_owner: str | None, new_owner: str
    ) -> None:
        """Record that a tenant was given a dedicated owner."""
        ...

    def with_context(self, context: ObservationContext) -> ProvisioningServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultProvisioningServiceProbe:
    """Default implementation of ProvisioningServiceProbe using structlog."""

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
    ) -> DefaultProvisioningServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultProvisioningServiceProbe(logger=self._logger, context=context)

    def provisioning_started(self, slug: str, owner_email: str) -> None:
        self._logger.info(
            "provisioning_started",
            slug=slug,
            owner_email=owner_email,
            **self._get_context_kwargs(),
        )

    def idempotent_replay(self, idempotency_key: str, ledger_id: str) -> None:
        self._logger.info(
            "provisioning_idempotent_replay",
            idempotency_key=idempotency_key,
            ledger_id=ledger_id,
            **self._get_context_kwargs(),
        )

    def slug_conflict(self, slug: str) -> None:
        self._logger.warning(
            "provisioning_slug_conflict",
            slug=slug,
            **self._get_context_kwargs(),
        )

    def identity_resolved(self, identity_id: str, created: bool) -> None:
        self._logger.info(
            "provisioning_identity_resolved",
            identity_id=identity_id,
            created=created,
            **self._get_context_kwargs(),
        )

    def ledger_opened(self, ledger_id: str, tenant_id: str) -> None:
        self._logger.info(
            "provisioning_ledger_opened",
            ledger_id=ledger_id,
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def profile_resolved(self, profile_id: str, action: str) -> None:
        self._logger.info(
            "provisioning_profile_resolved",
            profile_id=profile_id,
            action=action,
            **self._get_context_kwargs(),
        )

    def provisioning_completed(
        self, tenant_id: str, identity_id: str, ledger_id: str
    ) -> None:
        self._logger.info(
            "provisioning_completed",
            tenant_id=tenant_id,
            identity_id=identity_id,
            ledger_id=ledger_id,
            **self._get_context_kwargs(),
        )

    def provisioning_failed(self, ledger_id: str, error: str) -> None:
        self._logger.error(
            "provisioning_failed",
            ledger_id=ledger_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def ledger_close_failed(self, ledger_id: str, error: str) -> None:
        self._logger.error(
            "provisioning_ledger_close_failed",
            ledger_id=ledger_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def owner_reassigned(
        self, tenant_id: str, previous_owner: str | None, new_owner: str
    ) -> None:
        self._logger.info(
            "tenant_owner_reassigned",
            tenant_id=tenant_id,
            previous_owner=previous_owner,
            new_owner=new_owner,
            **self._get_context_kwargs(),
        )
