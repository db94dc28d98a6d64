"""Protocol for access role service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class AccessRoleServiceProbe(Protocol):
    """Domain probe for access role changes."""

    def role_granted(self, identity_id: str, role: str, granted_by: str | None) -> None:
        """Record that a role became active for an identity."""
        ...

    def role_revoked(self, identity_id: str, role: str) -> None:
        """Record that a role was revoked."""
        ...

    def role_unchanged(self, identity_id: str, role: str, status: str) -> None:
        """Record that a grant or revoke found nothing to change."""
        ...

    def with_context(self, context: ObservationContext) -> AccessRoleServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAccessRoleServiceProbe:
    """Default implementation of AccessRoleServiceProbe using structlog."""

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
    ) -> DefaultAccessRoleServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultAccessRoleServiceProbe(logger=self._logger, context=context)

    def role_granted(self, identity_id: str, role: str, granted_by: str | None) -> None:
        self._logger.info(
            "access_role_granted",
            identity_id=identity_id,
            role=role,
            granted_by=granted_by,
            **self._get_context_kwargs(),
        )

    def role_revoked(self, identity_id: str, role: str) -> None:
        self._logger.info(
            "access_role_revoked",
            identity_id=identity_id,
            role=role,
            **self._get_context_kwargs(),
        )

    def role_unchanged(self, identity_id: str, role: str, status: str) -> None:
        self._logger.debug(
            "access_role_unchanged",
            identity_id=identity_id,
            role=role,
            status=status,
            **self._get_context_kwargs(),
        )
