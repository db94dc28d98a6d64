"""Observation context for domain-oriented observability.

Observation contexts collect and manage contextual metadata for instrumentation,
following the Domain Oriented Observability pattern.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ObservationContext:
    """Immutable context containing metadata for observability.

    Captures request-scoped and domain-relevant metadata that should be
    included with all instrumentation events. This enables correlation
    of events across services and provides business context for debugging.

    Attributes:
        request_id: Unique identifier for the current request/operation.
        actor: Operator or service performing the operation (if applicable).
        tenant_id: Tenant the operation targets (if applicable).
        extra: Additional contextual metadata.

    Example:
        context = ObservationContext(
            request_id="req-123",
            actor="ops@example.com",
        )
        probe = DefaultProvisioningServiceProbe().with_context(context)
    """

    request_id: str | None = None
    actor: str | None = None
    tenant_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging.

        Only includes non-None values to keep logs clean.
        """
        result: dict[str, Any] = {}
        if self.request_id is not None:
            result["request_id"] = self.request_id
        if self.actor is not None:
            result["actor"] = self.actor
        if self.tenant_id is not None:
            result["tenant_id"] = self.tenant_id
        result.update(self.extra)
        return result

    def with_tenant(self, tenant_id: str) -> ObservationContext:
        """Create a new context with the tenant id set."""
        return ObservationContext(
            request_id=self.request_id,
            actor=self.actor,
            tenant_id=tenant_id,
            extra=self.extra,
        )

    def with_extra(self, **kwargs: Any) -> ObservationContext:
        """Create a new context with additional metadata."""
        new_extra = {**self.extra, **kwargs}
        return ObservationContext(
            request_id=self.request_id,
            actor=self.actor,
            tenant_id=self.tenant_id,
            extra=new_extra,
        )
