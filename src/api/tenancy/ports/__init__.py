"""Ports (interfaces) for the tenancy bounded context.

Ports define the contracts for stores and locks without specifying
implementation details, keeping the domain and application layers
independent of infrastructure.
"""

from tenancy.ports.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    EmailTakenError,
    IdentityCreateFailedError,
    InvalidProvisioningRequestError,
    InvariantViolationError,
    OwnerAlreadyBoundError,
    ProvisioningInProgressError,
    SweepInProgressError,
    TenantNotFoundError,
)
from tenancy.ports.locks import ISweepLock
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)

__all__ = [
    "ConcurrentModificationError",
    "ConflictError",
    "EmailTakenError",
    "IAccessRoleRepository",
    "IIdentityProvider",
    "IProfileRepository",
    "IProvisioningLedger",
    "ISweepLock",
    "ITenantRepository",
    "IdentityCreateFailedError",
    "InvalidProvisioningRequestError",
    "InvariantViolationError",
    "OwnerAlreadyBoundError",
    "ProvisioningInProgressError",
    "SweepInProgressError",
    "TenantNotFoundError",
]
