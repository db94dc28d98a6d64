"""Invariant verification service.

Loads a snapshot of the tenancy stores in one read transaction and runs the
pure integrity rules over it. Never writes.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    DefaultInvariantServiceProbe,
    InvariantServiceProbe,
)
from tenancy.domain.invariants import (
    IntegritySnapshot,
    InvariantViolation,
    check_invariants,
)
from tenancy.domain.value_objects import ADMINISTRATOR_ROLE
from tenancy.ports.exceptions import InvariantViolationError
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)


class InvariantService:
    """Application service reporting integrity violations."""

    def __init__(
        self,
        identities: IIdentityProvider,
        tenants: ITenantRepository,
        profiles: IProfileRepository,
        ledger: IProvisioningLedger,
        access_roles: IAccessRoleRepository,
        session: AsyncSession,
        administrator_role: str = ADMINISTRATOR_ROLE,
        probe: InvariantServiceProbe | None = None,
    ):
        self._identities = identities
        self._tenants = tenants
        self._profiles = profiles
        self._ledger = ledger
        self._access_roles = access_roles
        self._session = session
        self._administrator_role = administrator_role
        self._probe = probe or DefaultInvariantServiceProbe()

    async def verify(self) -> list[InvariantViolation]:
        """Check every integrity rule against the current store contents.

        Returns:
            All violations found, informational ones included
        """
        async with self._session.begin():
            snapshot = await self.load_snapshot()

        violations = check_invariants(snapshot)
        self._probe.invariants_checked(
            total=len(violations),
            blocking=sum(1 for v in violations if v.is_blocking),
        )
        return violations

    async def verify_or_raise(self) -> list[InvariantViolation]:
        """Like ``verify``, but treat blocking violations as an error.

        Returns:
            The informational violations, when nothing blocking was found

        Raises:
            InvariantViolationError: Carrying the blocking violations
        """
        violations = await self.verify()
        blocking = [v for v in violations if v.is_blocking]
        if blocking:
            raise InvariantViolationError(blocking)
        return violations

    async def load_snapshot(self) -> IntegritySnapshot:
        """Read everything the integrity rules need.

        Runs in the caller's transaction.
        """
        administrators = await self._access_roles.list_active_holders(
            self._administrator_role
        )
        return IntegritySnapshot(
            tenants=await self._tenants.list_all(),
            identities=await self._identities.list_all(),
            profiles=await self._profiles.list_all(),
            completed_records=await self._ledger.list_completed(),
            administrators=frozenset(role.identity_id for role in administrators),
        )
