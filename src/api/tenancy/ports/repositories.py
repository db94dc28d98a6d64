"""Repository protocols (ports) for the tenancy bounded context.

Each store the reconciliation engine touches is reached through one of
these protocols. Implementations share the caller's session and never
commit; the application services own the transaction boundaries, one
local transaction per saga step or repair.

Guarded updates (``set_owner_if_unset``, ``bind_if_unbound``,
``record_outcome``) re-read the row, re-check their guard and write with an
optimistic version check. They return False when the guard no longer holds
and raise ``ConcurrentModificationError`` when the row changed between the
read and the write.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tenancy.domain.aggregates import (
    AccessRole,
    Identity,
    Profile,
    ProvisioningRecord,
    Tenant,
)
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProfileId,
    ProvisioningRecordId,
    TenantId,
    TenantSlug,
)


@runtime_checkable
class IIdentityProvider(Protocol):
    """Identity store, owned by the authentication subsystem.

    Tenancy reads identities and may ask for a new one; nothing else.
    """

    async def get_by_id(self, identity_id: IdentityId) -> Identity | None:
        """Retrieve an identity by id."""
        ...

    async def get_by_email(self, email: EmailAddress) -> Identity | None:
        """Retrieve an identity by normalised email."""
        ...

    async def create_identity(self, email: EmailAddress) -> Identity:
        """Register a new, confirmed identity for ``email``.

        Raises:
            EmailTakenError: If an identity already uses the email
        """
        ...

    async def list_all(self) -> list[Identity]:
        """List every identity."""
        ...


@runtime_checkable
class ITenantRepository(Protocol):
    """Tenant registry."""

    async def add(self, tenant: Tenant) -> None:
        """Insert a new tenant row.

        Raises:
            ConflictError: If an active tenant already uses the slug
        """
        ...

    async def get_by_id(self, tenant_id: TenantId) -> Tenant | None:
        """Retrieve a tenant by id, active or not."""
        ...

    async def get_active_by_slug(self, slug: TenantSlug) -> Tenant | None:
        """Retrieve the active tenant using ``slug``."""
        ...

    async def list_all(self) -> list[Tenant]:
        """List every tenant, active or not."""
        ...

    async def list_active_by_owner(self, identity_id: IdentityId) -> list[Tenant]:
        """List active tenants owned by ``identity_id``."""
        ...

    async def list_without_owner(self) -> list[Tenant]:
        """List active tenants whose owner reference is null."""
        ...

    async def lock_owner(self, identity_id: IdentityId) -> None:
        """Serialise ownership writes for ``identity_id``.

        Held until the current transaction ends, so a check of the
        identity's active tenants followed by a write cannot interleave
        with another transaction doing the same.
        """
        ...

    async def set_owner_if_unset(
        self, tenant_id: TenantId, identity_id: IdentityId
    ) -> bool:
        """Set the owner only while it is still null.

        Returns:
            True if the owner was written, False if it was no longer null
            or the tenant is gone

        Raises:
            ConcurrentModificationError: If the row changed mid-update
        """
        ...

    async def replace_owner(
        self,
        tenant_id: TenantId,
        expected_owner: IdentityId | None,
        new_owner: IdentityId,
    ) -> bool:
        """Move ownership only while the owner is still ``expected_owner``.

        Raises:
            ConcurrentModificationError: If the row changed mid-update
        """
        ...

    async def deactivate(self, tenant_id: TenantId) -> bool:
        """Deactivate the tenant. Returns False if it was already inactive."""
        ...


@runtime_checkable
class IProfileRepository(Protocol):
    """Profile store."""

    async def add(self, profile: Profile) -> None:
        """Insert a new profile.

        Raises:
            ConflictError: If the identity already has a profile
        """
        ...

    async def get_by_identity(self, identity_id: IdentityId) -> Profile | None:
        """Retrieve the profile bound to ``identity_id``."""
        ...

    async def find_unbound_by_email(self, email: EmailAddress) -> Profile | None:
        """Retrieve the oldest profile with no identity link for ``email``."""
        ...

    async def list_all(self) -> list[Profile]:
        """List every profile."""
        ...

    async def list_unbound(self) -> list[Profile]:
        """List profiles with no identity link."""
        ...

    async def bind_if_unbound(
        self, profile_id: ProfileId, identity_id: IdentityId
    ) -> bool:
        """Link the profile only while its identity link is still null.

        Raises:
            ConcurrentModificationError: If the row changed mid-update
        """
        ...


@runtime_checkable
class IProvisioningLedger(Protocol):
    """Append-mostly ledger of provisioning attempts."""

    async def open(self, record: ProvisioningRecord) -> None:
        """Insert a pending record."""
        ...

    async def get_by_id(
        self, record_id: ProvisioningRecordId
    ) -> ProvisioningRecord | None:
        """Retrieve a record by id."""
        ...

    async def latest_for_idempotency_key(
        self, idempotency_key: str
    ) -> ProvisioningRecord | None:
        """Retrieve the newest record opened with ``idempotency_key``."""
        ...

    async def latest_completed_for_tenant(
        self, tenant_id: TenantId
    ) -> ProvisioningRecord | None:
        """Retrieve the newest completed record targeting ``tenant_id``."""
        ...

    async def list_pending(self) -> list[ProvisioningRecord]:
        """List records still pending, oldest first."""
        ...

    async def list_completed(self) -> list[ProvisioningRecord]:
        """List completed records."""
        ...

    async def record_outcome(self, record: ProvisioningRecord) -> bool:
        """Persist a terminal transition made on the aggregate.

        The write only applies while the stored record is still pending.

        Returns:
            True if the transition was stored, False if the stored record had
            already left ``pending``

        Raises:
            ConflictError: If completing would give the tenant a second
                completed record
            ConcurrentModificationError: If the row changed mid-update
        """
        ...


@runtime_checkable
class IAccessRoleRepository(Protocol):
    """Store of elevated-privilege role assignments."""

    async def get(self, identity_id: IdentityId, role: str) -> AccessRole | None:
        """Retrieve the assignment for ``(identity_id, role)``."""
        ...

    async def save(self, access_role: AccessRole) -> None:
        """Insert or update an assignment."""
        ...

    async def list_active_holders(self, role: str) -> list[AccessRole]:
        """List active assignments of ``role``."""
        ...
