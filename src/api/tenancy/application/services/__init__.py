"""Application services for the tenancy bounded context.

Together these form the reconciliation engine: provisioning, the repair
sweep and invariant verification, plus access role administration.
"""

from tenancy.application.services.access_role_service import AccessRoleService
from tenancy.application.services.invariant_service import InvariantService
from tenancy.application.services.provisioning_service import ProvisioningService
from tenancy.application.services.repair_sweep_service import RepairSweepService

__all__ = [
    "AccessRoleService",
    "InvariantService",
    "ProvisioningService",
    "RepairSweepService",
]
