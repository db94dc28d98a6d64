"""Tenant aggregate for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from tenancy.domain.exceptions import TenantDeactivatedError
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    TenantId,
    TenantSlug,
)


@dataclass
class Tenant:
    """Tenant aggregate representing a restaurant account.

    Business rules:
    - The slug is unique among active tenants (enforced by the store)
    - A tenant is owned by exactly one identity; a missing owner is drift
      that the repair sweep resolves
    - Tenants are never deleted, only deactivated
    """

    id: TenantId
    name: str
    slug: TenantSlug
    contact_email: EmailAddress
    owner_identity_id: IdentityId | None = None
    created_at: datetime | None = None
    deactivated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        tenant_id: TenantId,
        name: str,
        slug: TenantSlug,
        contact_email: EmailAddress,
        owner_identity_id: IdentityId | None,
    ) -> Tenant:
        """Factory method for a new, active tenant.

        The id is supplied by the caller because provisioning allocates it
        before the ledger entry is opened.

        Raises:
            ValueError: If the name is blank
        """
        name = name.strip()
        if not name:
            raise ValueError("Tenant name must not be empty")

        return cls(
            id=tenant_id,
            name=name,
            slug=slug,
            contact_email=contact_email,
            owner_identity_id=owner_identity_id,
            created_at=datetime.now(UTC),
        )

    @property
    def is_active(self) -> bool:
        """Active tenants count toward slug uniqueness and ownership."""
        return self.deactivated_at is None

    @property
    def has_owner(self) -> bool:
        """Check whether the owner reference is set."""
        return self.owner_identity_id is not None

    def assign_owner(self, identity_id: IdentityId) -> None:
        """Point the tenant at a new owning identity.

        Raises:
            TenantDeactivatedError: If the tenant has been deactivated
        """
        if not self.is_active:
            raise TenantDeactivatedError(
                f"Tenant {self.id} is deactivated; its owner cannot change"
            )
        self.owner_identity_id = identity_id

    def deactivate(self) -> None:
        """Retire the tenant, releasing its slug. Repeated calls are no-ops."""
        if self.deactivated_at is None:
            self.deactivated_at = datetime.now(UTC)

    def __str__(self) -> str:
        """Return string representation."""
        return f"Tenant({self.slug})"
