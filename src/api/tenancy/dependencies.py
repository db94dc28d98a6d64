"""Dependency injection for the tenancy bounded context.

Composes the write session, the audit trigger engine and the sweep lock with
the tenancy repositories and services. ``build_services`` is shared by the
FastAPI dependencies and the operator console.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from infrastructure.audit import AuditLogRepository, AuditTriggerEngine
from infrastructure.database.dependencies import (
    get_read_session,
    get_write_engine,
    get_write_session,
)
from infrastructure.database.models import Base
from infrastructure.settings import ProvisioningSettings, get_provisioning_settings
from tenancy.application.services import (
    AccessRoleService,
    InvariantService,
    ProvisioningService,
    RepairSweepService,
)
from tenancy.infrastructure import models as _tenancy_models  # noqa: F401
from tenancy.infrastructure.access_role_repository import AccessRoleRepository
from tenancy.infrastructure.identity_provider import SqlIdentityProvider
from tenancy.infrastructure.locks import build_sweep_lock
from tenancy.infrastructure.profile_repository import ProfileRepository
from tenancy.infrastructure.provisioning_ledger import ProvisioningLedger
from tenancy.infrastructure.tenant_repository import TenantRepository
from tenancy.ports.locks import ISweepLock


@dataclass(frozen=True)
class TenancyServices:
    """The tenancy services sharing one session."""

    provisioning: ProvisioningService
    sweep: RepairSweepService
    invariants: InvariantService
    access_roles: AccessRoleService


@lru_cache
def get_audit_engine() -> AuditTriggerEngine:
    """Get the audit trigger engine (singleton).

    Capability descriptors are resolved from the ORM metadata on first
    call; the application calls this at startup so that a misconfigured
    table list fails before the first request.

    Raises:
        UnknownAuditTableError: If a configured table does not exist
    """
    settings = get_provisioning_settings()
    return AuditTriggerEngine.from_metadata(
        Base.metadata, settings.audit_sensitive_tables
    )


def build_services(
    session: AsyncSession,
    sweep_lock: ISweepLock,
    settings: ProvisioningSettings,
) -> TenancyServices:
    """Wire the tenancy services over ``session``.

    The session must already have the audit engine attached.
    """
    identities = SqlIdentityProvider(session)
    tenants = TenantRepository(session)
    profiles = ProfileRepository(session)
    ledger = ProvisioningLedger(session)
    access_roles = AccessRoleRepository(session)

    invariants = InvariantService(
        identities=identities,
        tenants=tenants,
        profiles=profiles,
        ledger=ledger,
        access_roles=access_roles,
        session=session,
        administrator_role=settings.administrator_role,
    )
    return TenancyServices(
        provisioning=ProvisioningService(
            identities=identities,
            tenants=tenants,
            profiles=profiles,
            ledger=ledger,
            access_roles=access_roles,
            session=session,
            administrator_role=settings.administrator_role,
        ),
        sweep=RepairSweepService(
            identities=identities,
            tenants=tenants,
            profiles=profiles,
            ledger=ledger,
            access_roles=access_roles,
            invariants=invariants,
            lock=sweep_lock,
            session=session,
            stale_pending_after=timedelta(seconds=settings.stale_pending_after_seconds),
            administrator_role=settings.administrator_role,
        ),
        invariants=invariants,
        access_roles=AccessRoleService(access_roles=access_roles, session=session),
    )


def sweep_lock_for(engine: AsyncEngine) -> ISweepLock:
    """Sweep lock for ``engine`` keyed from settings."""
    return build_sweep_lock(engine, get_provisioning_settings().sweep_lock_key)


def get_sweep_lock() -> ISweepLock:
    """Get the sweep lock matching the write engine's dialect."""
    return sweep_lock_for(get_write_engine())


def get_audited_session(
    session: Annotated[AsyncSession, Depends(get_write_session)],
    audit_engine: Annotated[AuditTriggerEngine, Depends(get_audit_engine)],
) -> AsyncSession:
    """Get the request's write session with the audit trigger attached."""
    audit_engine.attach(session)
    return session


def get_tenancy_services(
    session: Annotated[AsyncSession, Depends(get_audited_session)],
    sweep_lock: Annotated[ISweepLock, Depends(get_sweep_lock)],
) -> TenancyServices:
    """Get the tenancy services for one request."""
    return build_services(session, sweep_lock, get_provisioning_settings())


def get_provisioning_service(
    services: Annotated[TenancyServices, Depends(get_tenancy_services)],
) -> ProvisioningService:
    return services.provisioning


def get_repair_sweep_service(
    services: Annotated[TenancyServices, Depends(get_tenancy_services)],
) -> RepairSweepService:
    return services.sweep


def get_invariant_service(
    services: Annotated[TenancyServices, Depends(get_tenancy_services)],
) -> InvariantService:
    return services.invariants


def get_access_role_service(
    services: Annotated[TenancyServices, Depends(get_tenancy_services)],
) -> AccessRoleService:
    return services.access_roles


def get_audit_log_repository(
    session: Annotated[AsyncSession, Depends(get_read_session)],
) -> AuditLogRepository:
    """Get the audit log reader over a read session."""
    return AuditLogRepository(session)
