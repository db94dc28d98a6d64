"""Unit tests for InvariantService."""

from unittest.mock import AsyncMock, Mock

import pytest

from tenancy.application.services import InvariantService
from tenancy.domain.aggregates import AccessRole, Identity, Tenant
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    TenantId,
    TenantSlug,
    ViolationKind,
)
from tenancy.ports.exceptions import InvariantViolationError
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)


def _tenant(slug: str, owner: Identity) -> Tenant:
    return Tenant(
        id=TenantId.generate(),
        name=slug,
        slug=TenantSlug.parse(slug),
        contact_email=owner.email,
        owner_identity_id=owner.id,
    )


@pytest.fixture
def owner() -> Identity:
    return Identity(id=IdentityId.generate(), email=EmailAddress.parse("y@example.com"))


@pytest.fixture
def mock_tenants():
    tenants = Mock(spec=ITenantRepository)
    tenants.list_all = AsyncMock(return_value=[])
    return tenants


@pytest.fixture
def mock_access_roles():
    access_roles = Mock(spec=IAccessRoleRepository)
    access_roles.list_active_holders = AsyncMock(return_value=[])
    return access_roles


@pytest.fixture
def invariant_service(mock_tenants, mock_access_roles, mock_session, owner):
    identities = Mock(spec=IIdentityProvider)
    identities.list_all = AsyncMock(return_value=[owner])
    profiles = Mock(spec=IProfileRepository)
    profiles.list_all = AsyncMock(return_value=[])
    ledger = Mock(spec=IProvisioningLedger)
    ledger.list_completed = AsyncMock(return_value=[])
    return InvariantService(
        identities=identities,
        tenants=mock_tenants,
        profiles=profiles,
        ledger=ledger,
        access_roles=mock_access_roles,
        session=mock_session,
        administrator_role="administrator",
    )


class TestVerify:
    @pytest.mark.asyncio
    async def test_empty_store_is_clean(self, invariant_service, mock_session):
        assert await invariant_service.verify() == []
        mock_session.begin.assert_called_once()

    @pytest.mark.asyncio
    async def test_reports_shared_owner(self, invariant_service, mock_tenants, owner):
        first = _tenant("first-place", owner)
        second = _tenant("second-place", owner)
        mock_tenants.list_all.return_value = [first, second]

        violations = await invariant_service.verify()

        conflicts = [
            v for v in violations if v.kind is ViolationKind.OWNERSHIP_CONFLICT
        ]
        assert len(conflicts) == 1
        assert set(conflicts[0].tenant_ids) == {first.id.value, second.id.value}

    @pytest.mark.asyncio
    async def test_reads_administrators_for_the_configured_role(
        self, invariant_service, mock_tenants, mock_access_roles, owner
    ):
        mock_tenants.list_all.return_value = [
            _tenant("first-place", owner),
            _tenant("second-place", owner),
        ]
        mock_access_roles.list_active_holders.return_value = [
            AccessRole.grant(owner.id, "administrator")
        ]

        violations = await invariant_service.verify()

        mock_access_roles.list_active_holders.assert_awaited_once_with("administrator")
        assert [v.kind for v in violations] == [
            ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP
        ]


class TestVerifyOrRaise:
    @pytest.mark.asyncio
    async def test_raises_with_blocking_violations(
        self, invariant_service, mock_tenants, owner
    ):
        mock_tenants.list_all.return_value = [
            _tenant("first-place", owner),
            _tenant("second-place", owner),
        ]

        with pytest.raises(InvariantViolationError) as exc_info:
            await invariant_service.verify_or_raise()

        assert all(v.is_blocking for v in exc_info.value.violations)
        assert exc_info.value.violations

    @pytest.mark.asyncio
    async def test_returns_informational_findings(
        self, invariant_service, mock_tenants, mock_access_roles, owner
    ):
        mock_tenants.list_all.return_value = [
            _tenant("first-place", owner),
            _tenant("second-place", owner),
        ]
        mock_access_roles.list_active_holders.return_value = [
            AccessRole.grant(owner.id, "administrator")
        ]

        informational = await invariant_service.verify_or_raise()

        assert len(informational) == 1
        assert not informational[0].is_blocking
