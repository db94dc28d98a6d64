"""Application-layer value objects for the tenancy bounded context.

Results and reports returned by the reconciliation engine to its callers
(HTTP routes and the operator console).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from tenancy.domain.invariants import InvariantViolation
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProvisioningRecordId,
    TenantId,
    TenantSlug,
)


@dataclass(frozen=True)
class ProvisioningResult:
    """Outcome of a provisioning or owner reassignment.

    ``ledger_id`` is None for owner reassignments, which write no ledger
    entry. ``idempotent`` is True when an earlier completed attempt with the
    same idempotency key was returned instead of provisioning again.
    """

    tenant_id: TenantId
    identity_id: IdentityId
    ledger_id: ProvisioningRecordId | None
    idempotent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id.value,
            "identity_id": self.identity_id.value,
            "ledger_id": self.ledger_id.value if self.ledger_id else None,
            "idempotent": self.idempotent,
        }


class RepairKind(StrEnum):
    """Kinds of write the repair sweep performs."""

    OWNER_BACKFILLED = "owner-backfilled"
    PROFILE_BOUND = "profile-bound"
    LEDGER_ABANDONED = "ledger-abandoned"
    LEDGER_COMPLETED = "ledger-completed"


@dataclass(frozen=True)
class RepairAction:
    """One field the sweep changed, or meant to change.

    Attributes:
        kind: What sort of repair
        table: Table of the repaired row
        row_id: Primary key of the repaired row
        field: Column written
        before: Value before the repair
        after: Value written
    """

    kind: RepairKind
    table: str
    row_id: str
    field: str
    before: str | None
    after: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "table": self.table,
            "row_id": self.row_id,
            "field": self.field,
            "before": self.before,
            "after": self.after,
        }


@dataclass(frozen=True)
class SweepError:
    """A repair that raised; the sweep moved on to the next row."""

    kind: RepairKind
    row_id: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "row_id": self.row_id, "error": self.error}


@dataclass
class SweepReport:
    """What one repair sweep found and did.

    Attributes:
        repairs: Writes that were applied
        skipped: Writes abandoned because the row changed since the scan
        findings: Drift the sweep reports but never repairs on its own
        errors: Repairs that raised
        violations_before: Integrity findings before any repair
        violations_after: Integrity findings after all repairs
    """

    started_at: datetime
    finished_at: datetime | None = None
    repairs: list[RepairAction] = field(default_factory=list)
    skipped: list[RepairAction] = field(default_factory=list)
    findings: list[InvariantViolation] = field(default_factory=list)
    errors: list[SweepError] = field(default_factory=list)
    violations_before: list[InvariantViolation] = field(default_factory=list)
    violations_after: list[InvariantViolation] = field(default_factory=list)

    @property
    def blocking_violations_after(self) -> list[InvariantViolation]:
        return [v for v in self.violations_after if v.is_blocking]

    @property
    def is_clean(self) -> bool:
        """True when the store ends the sweep with no blocking violation."""
        return not self.blocking_violations_after and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "repairs": [r.to_dict() for r in self.repairs],
            "skipped": [r.to_dict() for r in self.skipped],
            "findings": [f.to_dict() for f in self.findings],
            "errors": [e.to_dict() for e in self.errors],
            "violations_before": [v.to_dict() for v in self.violations_before],
            "violations_after": [v.to_dict() for v in self.violations_after],
        }


@dataclass(frozen=True)
class ProvisioningRequest:
    """Validated, normalised provisioning input."""

    tenant_name: str
    slug: TenantSlug
    owner_email: EmailAddress
    contact_email: EmailAddress
    idempotency_key: str | None = None
