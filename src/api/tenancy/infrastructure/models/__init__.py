"""SQLAlchemy ORM models for the tenancy bounded context."""

from tenancy.infrastructure.models.access_role import AccessRoleModel
from tenancy.infrastructure.models.identity import IdentityModel
from tenancy.infrastructure.models.profile import ProfileModel
from tenancy.infrastructure.models.provisioning_record import ProvisioningRecordModel
from tenancy.infrastructure.models.tenant import TenantModel

__all__ = [
    "AccessRoleModel",
    "IdentityModel",
    "ProfileModel",
    "ProvisioningRecordModel",
    "TenantModel",
]
