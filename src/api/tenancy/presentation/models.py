"""Pydantic models for tenancy admin API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from shared_kernel.audit.value_objects import AuditEntry
from tenancy.application.value_objects import (
    ProvisioningResult,
    RepairAction,
    SweepError,
    SweepReport,
)
from tenancy.domain.aggregates import AccessRole
from tenancy.domain.invariants import InvariantViolation


class ProvisionTenantRequest(BaseModel):
    """Request model for provisioning a tenant."""

    tenant_name: str = Field(
        ..., description="Restaurant display name", min_length=1, max_length=255
    )
    slug: str = Field(
        ..., description="URL handle, e.g. nature-village", min_length=1, max_length=100
    )
    owner_email: str = Field(
        ..., description="Email of the owning identity", min_length=3, max_length=320
    )
    contact_email: str | None = Field(
        default=None, description="Public contact email (defaults to owner_email)"
    )
    idempotency_key: str | None = Field(
        default=None,
        description="Repeated requests with the same key provision once",
        max_length=255,
    )


class ReassignOwnerRequest(BaseModel):
    """Request model for moving a tenant to a new dedicated owner."""

    owner_email: str = Field(
        ...,
        description="Email for the new owner identity",
        min_length=3,
        max_length=320,
    )


class GrantAccessRoleRequest(BaseModel):
    """Optional body when granting an access role."""

    granted_by: str | None = Field(default=None, description="Who granted the role")


class ProvisioningResultResponse(BaseModel):
    """Response model for provisioning and owner reassignment."""

    tenant_id: str = Field(..., description="Tenant ID (ULID format)")
    identity_id: str = Field(..., description="Owning identity ID")
    ledger_id: str | None = Field(
        ..., description="Provisioning ledger entry ID, None for reassignments"
    )
    idempotent: bool = Field(
        default=False, description="True when an earlier attempt was returned"
    )

    @classmethod
    def from_domain(cls, result: ProvisioningResult) -> ProvisioningResultResponse:
        return cls(
            tenant_id=result.tenant_id.value,
            identity_id=result.identity_id.value,
            ledger_id=result.ledger_id.value if result.ledger_id else None,
            idempotent=result.idempotent,
        )


class ViolationResponse(BaseModel):
    """Response model for one integrity finding."""

    kind: str
    message: str
    tenant_ids: list[str] = Field(default_factory=list)
    identity_id: str | None = None
    profile_id: str | None = None
    blocking: bool

    @classmethod
    def from_domain(cls, violation: InvariantViolation) -> ViolationResponse:
        return cls(
            kind=violation.kind.value,
            message=violation.message,
            tenant_ids=list(violation.tenant_ids),
            identity_id=violation.identity_id,
            profile_id=violation.profile_id,
            blocking=violation.is_blocking,
        )


class InvariantReportResponse(BaseModel):
    """Response model for invariant verification."""

    clean: bool = Field(..., description="True when no blocking violation exists")
    blocking_count: int
    violations: list[ViolationResponse]

    @classmethod
    def from_domain(
        cls, violations: list[InvariantViolation]
    ) -> InvariantReportResponse:
        blocking = sum(1 for v in violations if v.is_blocking)
        return cls(
            clean=blocking == 0,
            blocking_count=blocking,
            violations=[ViolationResponse.from_domain(v) for v in violations],
        )


class RepairActionResponse(BaseModel):
    kind: str
    table: str
    row_id: str
    field: str
    before: str | None
    after: str | None

    @classmethod
    def from_domain(cls, action: RepairAction) -> RepairActionResponse:
        return cls(
            kind=action.kind.value,
            table=action.table,
            row_id=action.row_id,
            field=action.field,
            before=action.before,
            after=action.after,
        )


class SweepErrorResponse(BaseModel):
    kind: str
    row_id: str
    error: str

    @classmethod
    def from_domain(cls, error: SweepError) -> SweepErrorResponse:
        return cls(kind=error.kind.value, row_id=error.row_id, error=error.error)


class SweepReportResponse(BaseModel):
    """Response model for a repair sweep."""

    started_at: datetime
    finished_at: datetime | None
    clean: bool
    repairs: list[RepairActionResponse]
    skipped: list[RepairActionResponse]
    findings: list[ViolationResponse]
    errors: list[SweepErrorResponse]
    violations_before: list[ViolationResponse]
    violations_after: list[ViolationResponse]

    @classmethod
    def from_domain(cls, report: SweepReport) -> SweepReportResponse:
        return cls(
            started_at=report.started_at,
            finished_at=report.finished_at,
            clean=report.is_clean,
            repairs=[RepairActionResponse.from_domain(a) for a in report.repairs],
            skipped=[RepairActionResponse.from_domain(a) for a in report.skipped],
            findings=[ViolationResponse.from_domain(f) for f in report.findings],
            errors=[SweepErrorResponse.from_domain(e) for e in report.errors],
            violations_before=[
                ViolationResponse.from_domain(v) for v in report.violations_before
            ],
            violations_after=[
                ViolationResponse.from_domain(v) for v in report.violations_after
            ],
        )


class AccessRoleResponse(BaseModel):
    """Response model for an access role assignment."""

    identity_id: str
    role: str
    active: bool
    granted_by: str | None = None

    @classmethod
    def from_domain(cls, access_role: AccessRole) -> AccessRoleResponse:
        return cls(
            identity_id=access_role.identity_id.value,
            role=access_role.role,
            active=access_role.is_active,
            granted_by=access_role.granted_by,
        )


class RevokeAccessRoleResponse(BaseModel):
    identity_id: str
    role: str
    revoked: bool = Field(..., description="False when the role was not active")


class AuditEntryResponse(BaseModel):
    """Response model for one audit log entry."""

    id: str
    table_name: str
    row_id: str
    actor: str
    operation: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    tenant_id: str | None
    row_status: str | None
    occurred_at: datetime

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> AuditEntryResponse:
        return cls(
            id=entry.id,
            table_name=entry.table_name,
            row_id=entry.row_id,
            actor=entry.actor,
            operation=entry.operation.value,
            before=entry.before,
            after=entry.after,
            tenant_id=entry.tenant_id,
            row_status=entry.row_status,
            occurred_at=entry.occurred_at,
        )
