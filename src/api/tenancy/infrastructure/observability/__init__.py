"""Observability probes for tenancy infrastructure."""

from tenancy.infrastructure.observability.repository_probe import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)

__all__ = [
    "DefaultTenancyRepositoryProbe",
    "TenancyRepositoryProbe",
]
