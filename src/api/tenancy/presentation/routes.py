"""HTTP routes for tenancy administration.

Every endpoint is an operator action. The optional ``X-Actor`` header names
the operator; audit entries written by the request are attributed to it.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from infrastructure.audit import AuditLogRepository
from shared_kernel.audit.exceptions import AuditWriteFailedError
from tenancy.application.services import (
    AccessRoleService,
    InvariantService,
    ProvisioningService,
    RepairSweepService,
)
from tenancy.dependencies import (
    get_access_role_service,
    get_audit_log_repository,
    get_invariant_service,
    get_provisioning_service,
    get_repair_sweep_service,
)
from tenancy.domain.value_objects import IdentityId, TenantId
from tenancy.ports.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    IdentityCreateFailedError,
    InvalidProvisioningRequestError,
    OwnerAlreadyBoundError,
    ProvisioningInProgressError,
    SweepInProgressError,
    TenantNotFoundError,
)
from tenancy.presentation.models import (
    AccessRoleResponse,
    AuditEntryResponse,
    GrantAccessRoleRequest,
    InvariantReportResponse,
    ProvisioningResultResponse,
    ProvisionTenantRequest,
    ReassignOwnerRequest,
    RevokeAccessRoleResponse,
    SweepReportResponse,
)

router = APIRouter(
    prefix="/tenancy/admin",
    tags=["tenancy"],
)

ActorHeader = Annotated[str | None, Header(alias="X-Actor")]


@router.post(
    "/provision",
    status_code=status.HTTP_201_CREATED,
)
async def provision_tenant(
    request: ProvisionTenantRequest,
    service: Annotated[ProvisioningService, Depends(get_provisioning_service)],
    actor: ActorHeader = None,
) -> ProvisioningResultResponse:
    """Provision a tenant owned by the identity for ``owner_email``.

    Raises:
        HTTPException: 422 if the input is malformed
        HTTPException: 409 if the slug is taken, the owner already owns a
            tenant, or an attempt with the same idempotency key is pending
        HTTPException: 502 if the identity store failed
        HTTPException: 500 if the audit trail could not be written
    """
    try:
        result = await service.provision(
            request.tenant_name,
            request.slug,
            request.owner_email,
            contact_email=request.contact_email,
            idempotency_key=request.idempotency_key,
            actor=actor,
        )
        return ProvisioningResultResponse.from_domain(result)

    except InvalidProvisioningRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    except OwnerAlreadyBoundError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Owner already owns tenant(s): {', '.join(e.tenant_ids)}",
        ) from e
    except (ConflictError, ProvisioningInProgressError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except IdentityCreateFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Identity store could not create the owner identity",
        ) from e
    except AuditWriteFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to write the audit trail; nothing was provisioned",
        ) from e


@router.post("/tenants/{tenant_id}/owner")
async def reassign_tenant_owner(
    tenant_id: str,
    request: ReassignOwnerRequest,
    service: Annotated[ProvisioningService, Depends(get_provisioning_service)],
    actor: ActorHeader = None,
) -> ProvisioningResultResponse:
    """Move a tenant to a new, dedicated owner identity.

    Raises:
        HTTPException: 400 if the tenant ID is malformed
        HTTPException: 404 if the tenant does not exist
        HTTPException: 409 if the email is registered or the owner changed
        HTTPException: 422 if the email is malformed
        HTTPException: 502 if the identity store failed
    """
    try:
        tenant_id_obj = TenantId.from_string(tenant_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid tenant ID format: {e}",
        ) from e

    try:
        result = await service.reassign_owner(
            tenant_id_obj, request.owner_email, actor=actor
        )
        return ProvisioningResultResponse.from_domain(result)

    except InvalidProvisioningRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    except TenantNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (ConflictError, ConcurrentModificationError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except IdentityCreateFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Identity store could not create the owner identity",
        ) from e


@router.post("/sweep")
async def run_repair_sweep(
    service: Annotated[RepairSweepService, Depends(get_repair_sweep_service)],
    actor: ActorHeader = None,
) -> SweepReportResponse:
    """Run the repair sweep and report what it repaired and found.

    Raises:
        HTTPException: 409 if another sweep is running
    """
    try:
        report = await service.run(actor=actor)
    except SweepInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return SweepReportResponse.from_domain(report)


@router.get("/invariants")
async def verify_invariants(
    service: Annotated[InvariantService, Depends(get_invariant_service)],
) -> InvariantReportResponse:
    """Report integrity violations without changing anything.

    Violations are the payload, not an error: the response is 200 whether
    or not any were found.
    """
    violations = await service.verify()
    return InvariantReportResponse.from_domain(violations)


@router.get("/access-roles/{identity_id}/{role}")
async def get_access_role(
    identity_id: str,
    role: str,
    service: Annotated[AccessRoleService, Depends(get_access_role_service)],
) -> AccessRoleResponse:
    """Report whether an identity actively holds a role."""
    identity = _parse_identity_id(identity_id)
    held = await service.has_role(identity, role)
    return AccessRoleResponse(
        identity_id=identity.value, role=role.strip().lower(), active=held
    )


@router.put("/access-roles/{identity_id}/{role}")
async def grant_access_role(
    identity_id: str,
    role: str,
    service: Annotated[AccessRoleService, Depends(get_access_role_service)],
    request: GrantAccessRoleRequest | None = None,
    actor: ActorHeader = None,
) -> AccessRoleResponse:
    """Grant a role, re-activating it if it was revoked."""
    identity = _parse_identity_id(identity_id)
    granted_by = (request.granted_by if request else None) or actor
    try:
        assignment = await service.grant(identity, role, granted_by=granted_by)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    return AccessRoleResponse.from_domain(assignment)


@router.delete("/access-roles/{identity_id}/{role}")
async def revoke_access_role(
    identity_id: str,
    role: str,
    service: Annotated[AccessRoleService, Depends(get_access_role_service)],
) -> RevokeAccessRoleResponse:
    """Revoke a role. Revoking a role that is not active changes nothing."""
    identity = _parse_identity_id(identity_id)
    revoked = await service.revoke(identity, role)
    return RevokeAccessRoleResponse(
        identity_id=identity.value, role=role.strip().lower(), revoked=revoked
    )


@router.get("/audit/{table_name}/{row_id}")
async def list_audit_entries(
    table_name: str,
    row_id: str,
    repository: Annotated[AuditLogRepository, Depends(get_audit_log_repository)],
) -> list[AuditEntryResponse]:
    """List the audit trail of one row, oldest first."""
    entries = await repository.list_for_row(table_name, row_id)
    return [AuditEntryResponse.from_domain(entry) for entry in entries]


def _parse_identity_id(identity_id: str) -> IdentityId:
    try:
        return IdentityId.from_string(identity_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid identity ID format: {e}",
        ) from e
