"""Access role application service.

Grants and revokes elevated-privilege roles. Holding the administrator role
exempts an identity from the single-ownership rule; nothing else in this
context reads roles, and roles never make an identity a tenant owner.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    AccessRoleServiceProbe,
    DefaultAccessRoleServiceProbe,
)
from tenancy.domain.aggregates import AccessRole
from tenancy.domain.value_objects import IdentityId
from tenancy.ports.repositories import IAccessRoleRepository


class AccessRoleService:
    """Application service for access role assignments."""

    def __init__(
        self,
        access_roles: IAccessRoleRepository,
        session: AsyncSession,
        probe: AccessRoleServiceProbe | None = None,
    ):
        self._access_roles = access_roles
        self._session = session
        self._probe = probe or DefaultAccessRoleServiceProbe()

    async def has_role(self, identity_id: IdentityId, role: str) -> bool:
        """Check whether ``identity_id`` actively holds ``role``."""
        async with self._session.begin():
            assignment = await self._access_roles.get(identity_id, _normalise(role))
        return assignment is not None and assignment.is_active

    async def grant(
        self,
        identity_id: IdentityId,
        role: str,
        granted_by: str | None = None,
    ) -> AccessRole:
        """Grant ``role``, re-activating a revoked assignment. Idempotent.

        Raises:
            ValueError: If the role name is blank
        """
        requested = AccessRole.grant(identity_id, role, granted_by=granted_by)

        async with self._session.begin():
            existing = await self._access_roles.get(identity_id, requested.role)
            if existing is None:
                await self._access_roles.save(requested)
                assignment = requested
            elif existing.activate(granted_by):
                await self._access_roles.save(existing)
                assignment = existing
            else:
                self._probe.role_unchanged(
                    identity_id.value, existing.role, existing.status.value
                )
                return existing

        self._probe.role_granted(identity_id.value, assignment.role, granted_by)
        return assignment

    async def revoke(self, identity_id: IdentityId, role: str) -> bool:
        """Revoke ``role``.

        Returns:
            True if an active assignment was revoked, False otherwise
        """
        role = _normalise(role)
        async with self._session.begin():
            existing = await self._access_roles.get(identity_id, role)
            if existing is None or not existing.revoke():
                self._probe.role_unchanged(identity_id.value, role, "revoked")
                return False
            await self._access_roles.save(existing)

        self._probe.role_revoked(identity_id.value, role)
        return True

    async def list_holders(self, role: str) -> list[AccessRole]:
        """List the identities actively holding ``role``."""
        async with self._session.begin():
            return await self._access_roles.list_active_holders(_normalise(role))


def _normalise(role: str) -> str:
    return role.strip().lower()
