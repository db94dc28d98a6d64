"""Observability probes for tenancy application services."""

from tenancy.application.observability.access_role_service_probe import (
    AccessRoleServiceProbe,
    DefaultAccessRoleServiceProbe,
)
from tenancy.application.observability.invariant_service_probe import (
    DefaultInvariantServiceProbe,
    InvariantServiceProbe,
)
from tenancy.application.observability.provisioning_service_probe import (
    DefaultProvisioningServiceProbe,
    ProvisioningServiceProbe,
)
from tenancy.application.observability.repair_sweep_probe import (
    DefaultRepairSweepProbe,
    RepairSweepProbe,
)

__all__ = [
    "AccessRoleServiceProbe",
    "DefaultAccessRoleServiceProbe",
    "DefaultInvariantServiceProbe",
    "DefaultProvisioningServiceProbe",
    "DefaultRepairSweepProbe",
    "InvariantServiceProbe",
    "ProvisioningServiceProbe",
    "RepairSweepProbe",
]
