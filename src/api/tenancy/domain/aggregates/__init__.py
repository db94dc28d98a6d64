"""Aggregates for the tenancy bounded context."""

from tenancy.domain.aggregates.access_role import AccessRole
from tenancy.domain.aggregates.identity import Identity
from tenancy.domain.aggregates.profile import Profile
from tenancy.domain.aggregates.provisioning_record import ProvisioningRecord
from tenancy.domain.aggregates.tenant import Tenant

__all__ = [
    "AccessRole",
    "Identity",
    "Profile",
    "ProvisioningRecord",
    "Tenant",
]
