"""Unit tests for ProvisioningService with mocked stores."""

from unittest.mock import AsyncMock, Mock

import pytest

from shared_kernel.audit.context import current_actor
from tenancy.application.services import ProvisioningService
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
    ProfileRole,
    ProvisioningStatus,
    TenantId,
    TenantSlug,
)
from tenancy.ports.exceptions import (
    ConflictError,
    EmailTakenError,
    IdentityCreateFailedError,
    InvalidProvisioningRequestError,
    OwnerAlreadyBoundError,
    ProvisioningInProgressError,
    TenantNotFoundError,
)
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)

OWNER_EMAIL = EmailAddress.parse("nv@example.com")


@pytest.fixture
def owner() -> Identity:
    return Identity(id=IdentityId.generate(), email=OWNER_EMAIL)


@pytest.fixture
def mock_identities(owner):
    """Identity store that knows nobody and creates ``owner`` on demand."""
    identities = Mock(spec=IIdentityProvider)
    identities.get_by_email = AsyncMock(return_value=None)
    identities.create_identity = AsyncMock(return_value=owner)
    return identities


@pytest.fixture
def mock_tenants():
    tenants = Mock(spec=ITenantRepository)
    tenants.get_active_by_slug = AsyncMock(return_value=None)
    tenants.list_active_by_owner = AsyncMock(return_value=[])
    tenants.lock_owner = AsyncMock()
    tenants.add = AsyncMock()
    return tenants


@pytest.fixture
def mock_profiles():
    profiles = Mock(spec=IProfileRepository)
    profiles.get_by_identity = AsyncMock(return_value=None)
    profiles.find_unbound_by_email = AsyncMock(return_value=None)
    profiles.bind_if_unbound = AsyncMock(return_value=True)
    profiles.add = AsyncMock()
    return profiles


@pytest.fixture
def mock_ledger():
    ledger = Mock(spec=IProvisioningLedger)
    ledger.latest_for_idempotency_key = AsyncMock(return_value=None)
    ledger.open = AsyncMock()
    ledger.record_outcome = AsyncMock(return_value=True)
    return ledger


@pytest.fixture
def mock_access_roles():
    access_roles = Mock(spec=IAccessRoleRepository)
    access_roles.get = AsyncMock(return_value=None)
    return access_roles


@pytest.fixture
def provisioning_service(
    mock_identities,
    mock_tenants,
    mock_profiles,
    mock_ledger,
    mock_access_roles,
    mock_session,
):
    """Create ProvisioningService with mocked dependencies."""
    return ProvisioningService(
        identities=mock_identities,
        tenants=mock_tenants,
        profiles=mock_profiles,
        ledger=mock_ledger,
        access_roles=mock_access_roles,
        session=mock_session,
    )


def _outcome(mock_ledger) -> ProvisioningRecord:
    """The record passed to the last record_outcome call."""
    return mock_ledger.record_outcome.await_args.args[0]


def _existing_tenant(owner: Identity, slug: str = "other-place") -> Tenant:
    return Tenant(
        id=TenantId.generate(),
        name="Other Place",
        slug=TenantSlug.parse(slug),
        contact_email=owner.email,
        owner_identity_id=owner.id,
    )


class TestProvision:
    """Tests for ProvisioningService.provision()."""

    @pytest.mark.asyncio
    async def test_provisions_tenant_for_new_owner(
        self,
        provisioning_service,
        mock_identities,
        mock_tenants,
        mock_profiles,
        mock_ledger,
        owner,
    ):
        """A new owner gets an identity, a profile and the tenant."""
        result = await provisioning_service.provision(
            "Nature Village", "nature-village", "nv@example.com"
        )

        assert result.identity_id == owner.id
        assert result.idempotent is False
        mock_identities.create_identity.assert_awaited_once_with(OWNER_EMAIL)

        opened: ProvisioningRecord = mock_ledger.open.await_args.args[0]
        assert opened.status is ProvisioningStatus.PENDING
        assert opened.tenant_id == result.tenant_id
        assert opened.id == result.ledger_id

        added_profile: Profile = mock_profiles.add.await_args.args[0]
        assert added_profile.identity_id == owner.id
        assert added_profile.role is ProfileRole.OWNER

        tenant: Tenant = mock_tenants.add.await_args.args[0]
        assert tenant.id == result.tenant_id
        assert tenant.owner_identity_id == owner.id
        assert tenant.slug.value == "nature-village"
        assert tenant.contact_email == OWNER_EMAIL

        closed = _outcome(mock_ledger)
        assert closed.status is ProvisioningStatus.COMPLETED
        assert closed.identity_id == owner.id

    @pytest.mark.asyncio
    async def test_reuses_existing_identity(
        self, provisioning_service, mock_identities, owner
    ):
        mock_identities.get_by_email.return_value = owner

        result = await provisioning_service.provision(
            "Nature Village", "nature-village", "NV@example.com"
        )

        assert result.identity_id == owner.id
        mock_identities.create_identity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_binds_unbound_profile_instead_of_creating(
        self, provisioning_service, mock_profiles, owner
    ):
        """A profile left by an earlier signup is bound, not duplicated."""
        unbound = Profile.create(email=OWNER_EMAIL, role=ProfileRole.STAFF)
        mock_profiles.find_unbound_by_email.return_value = unbound

        await provisioning_service.provision(
            "Nature Village", "nature-village", "nv@example.com"
        )

        mock_profiles.bind_if_unbound.assert_awaited_once_with(unbound.id, owner.id)
        mock_profiles.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_of_another_tenant_is_rejected(
        self, provisioning_service, mock_identities, mock_tenants, mock_ledger, owner
    ):
        """Single ownership: the attempt fails and the ledger says so."""
        mock_identities.get_by_email.return_value = owner
        existing = _existing_tenant(owner)
        mock_tenants.list_active_by_owner.return_value = [existing]

        with pytest.raises(OwnerAlreadyBoundError) as exc_info:
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        assert exc_info.value.tenant_ids == (existing.id.value,)
        mock_tenants.add.assert_not_awaited()
        closed = _outcome(mock_ledger)
        assert closed.status is ProvisioningStatus.FAILED
        assert existing.id.value in closed.error_message

    @pytest.mark.asyncio
    async def test_administrator_may_own_several_tenants(
        self,
        provisioning_service,
        mock_identities,
        mock_tenants,
        mock_access_roles,
        mock_ledger,
        owner,
    ):
        mock_identities.get_by_email.return_value = owner
        mock_tenants.list_active_by_owner.return_value = [_existing_tenant(owner)]
        mock_access_roles.get.return_value = AccessRole.grant(owner.id, "administrator")

        result = await provisioning_service.provision(
            "Nature Village", "nature-village", "nv@example.com"
        )

        assert result.identity_id == owner.id
        mock_access_roles.get.assert_awaited_with(owner.id, "administrator")
        assert _outcome(mock_ledger).status is ProvisioningStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_revoked_administrator_is_not_exempt(
        self,
        provisioning_service,
        mock_identities,
        mock_tenants,
        mock_access_roles,
        owner,
    ):
        mock_identities.get_by_email.return_value = owner
        mock_tenants.list_active_by_owner.return_value = [_existing_tenant(owner)]
        role = AccessRole.grant(owner.id, "administrator")
        role.revoke()
        mock_access_roles.get.return_value = role

        with pytest.raises(OwnerAlreadyBoundError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

    @pytest.mark.asyncio
    async def test_other_access_roles_do_not_exempt(
        self,
        provisioning_service,
        mock_identities,
        mock_tenants,
        mock_access_roles,
        owner,
    ):
        """Only the administrator role allows a second tenant."""
        mock_identities.get_by_email.return_value = owner
        mock_tenants.list_active_by_owner.return_value = [_existing_tenant(owner)]
        mock_access_roles.get.side_effect = lambda identity_id, role: (
            AccessRole.grant(identity_id, role) if role == "support" else None
        )

        with pytest.raises(OwnerAlreadyBoundError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        mock_tenants.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_is_locked_before_ownership_check(
        self, provisioning_service, mock_identities, mock_tenants, owner
    ):
        """Concurrent provisions for one owner see each other's tenant."""
        mock_identities.get_by_email.return_value = owner
        calls: list[str] = []
        mock_tenants.lock_owner.side_effect = lambda identity_id: calls.append(
            "lock"
        )
        mock_tenants.list_active_by_owner.side_effect = lambda identity_id: (
            calls.append("check") or []
        )
        mock_tenants.add.side_effect = lambda tenant: calls.append("insert")

        await provisioning_service.provision(
            "Nature Village", "nature-village", "nv@example.com"
        )

        mock_tenants.lock_owner.assert_awaited_once_with(owner.id)
        assert calls == ["lock", "check", "insert"]

    @pytest.mark.asyncio
    async def test_profile_created_concurrently_is_reused(
        self, provisioning_service, mock_profiles, mock_tenants, mock_ledger, owner
    ):
        """Losing the race to create the owner profile is not a failure."""
        winner = Profile.create(
            email=owner.email, role=ProfileRole.OWNER, identity_id=owner.id
        )
        mock_profiles.get_by_identity.side_effect = [None, winner]
        mock_profiles.add.side_effect = ConflictError(
            f"Identity {owner.id} already has a profile"
        )

        result = await provisioning_service.provision(
            "Nature Village", "nature-village", "nv@example.com"
        )

        assert result.identity_id == owner.id
        mock_profiles.add.assert_awaited_once()
        mock_tenants.add.assert_awaited_once()
        assert _outcome(mock_ledger).status is ProvisioningStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_profile_conflict_without_a_profile_fails(
        self, provisioning_service, mock_profiles, mock_tenants, mock_ledger
    ):
        mock_profiles.add.side_effect = ConflictError("duplicate profile")

        with pytest.raises(ConflictError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        mock_tenants.add.assert_not_awaited()
        assert _outcome(mock_ledger).status is ProvisioningStatus.FAILED

    @pytest.mark.asyncio
    async def test_taken_slug_fails_before_any_write(
        self, provisioning_service, mock_tenants, mock_identities, mock_ledger, owner
    ):
        mock_tenants.get_active_by_slug.return_value = _existing_tenant(
            owner, slug="nature-village"
        )

        with pytest.raises(ConflictError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        mock_identities.create_identity.assert_not_awaited()
        mock_ledger.open.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slug_lost_at_insert_closes_ledger_failed(
        self, provisioning_service, mock_tenants, mock_ledger
    ):
        """A concurrent provision that won the slug surfaces as a conflict."""
        mock_tenants.add.side_effect = ConflictError("slug taken")

        with pytest.raises(ConflictError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        assert _outcome(mock_ledger).status is ProvisioningStatus.FAILED

    @pytest.mark.asyncio
    async def test_identity_store_failure(
        self, provisioning_service, mock_identities, mock_ledger
    ):
        mock_identities.create_identity.side_effect = RuntimeError("auth down")

        with pytest.raises(IdentityCreateFailedError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        mock_ledger.open.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ledger_close_failure_keeps_original_error(
        self, provisioning_service, mock_tenants, mock_ledger
    ):
        """If the ledger cannot be closed, the sweep closes it later."""
        mock_tenants.add.side_effect = ConflictError("slug taken")
        mock_ledger.record_outcome.side_effect = RuntimeError("ledger down")

        with pytest.raises(ConflictError):
            await provisioning_service.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

    @pytest.mark.parametrize(
        "name,slug,email",
        [
            ("", "nature-village", "nv@example.com"),
            ("Nature Village", "Nature Village!", "nv@example.com"),
            ("Nature Village", "nature-village", "not-an-email"),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejects_malformed_input(
        self, provisioning_service, mock_ledger, name, slug, email
    ):
        with pytest.raises(InvalidProvisioningRequestError):
            await provisioning_service.provision(name, slug, email)

        mock_ledger.open.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_actor_is_set_during_writes(
        self, provisioning_service, mock_tenants
    ):
        seen: list[str] = []
        mock_tenants.add.side_effect = lambda tenant: seen.append(current_actor())

        await provisioning_service.provision(
            "Nature Village",
            "nature-village",
            "nv@example.com",
            actor="ops@example.com",
        )

        assert seen == ["ops@example.com"]
        assert current_actor() == "system"


class TestIdempotency:
    """Repeated requests with one idempotency key provision once."""

    @pytest.mark.asyncio
    async def test_completed_attempt_is_returned(
        self, provisioning_service, mock_ledger, mock_identities, owner
    ):
        earlier = ProvisioningRecord.open(
            tenant_id=TenantId.generate(),
            restaurant_name="Nature Village",
            restaurant_slug=TenantSlug.parse("nature-village"),
            owner_email=OWNER_EMAIL,
            idempotency_key="req-1",
        )
        earlier.complete(owner.id)
        mock_ledger.latest_for_idempotency_key.return_value = earlier

        result = await provisioning_service.provision(
            "Nature Village",
            "nature-village",
            "nv@example.com",
            idempotency_key="req-1",
        )

        assert result.idempotent is True
        assert result.tenant_id == earlier.tenant_id
        assert result.ledger_id == earlier.id
        mock_ledger.open.assert_not_awaited()
        mock_identities.create_identity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_attempt_is_in_progress(
        self, provisioning_service, mock_ledger
    ):
        mock_ledger.latest_for_idempotency_key.return_value = ProvisioningRecord.open(
            tenant_id=TenantId.generate(),
            restaurant_name="Nature Village",
            restaurant_slug=TenantSlug.parse("nature-village"),
            owner_email=OWNER_EMAIL,
            idempotency_key="req-1",
        )

        with pytest.raises(ProvisioningInProgressError):
            await provisioning_service.provision(
                "Nature Village",
                "nature-village",
                "nv@example.com",
                idempotency_key="req-1",
            )

    @pytest.mark.asyncio
    async def test_failed_attempt_is_retried(self, provisioning_service, mock_ledger):
        failed = ProvisioningRecord.open(
            tenant_id=TenantId.generate(),
            restaurant_name="Nature Village",
            restaurant_slug=TenantSlug.parse("nature-village"),
            owner_email=OWNER_EMAIL,
            idempotency_key="req-1",
        )
        failed.fail("auth down")
        mock_ledger.latest_for_idempotency_key.return_value = failed

        result = await provisioning_service.provision(
            "Nature Village",
            "nature-village",
            "nv@example.com",
            idempotency_key="req-1",
        )

        assert result.idempotent is False
        assert result.tenant_id != failed.tenant_id
        mock_ledger.open.assert_awaited_once()


class TestReassignOwner:
    """Tests for ProvisioningService.reassign_owner()."""

    @pytest.fixture
    def shared_tenant(self, owner) -> Tenant:
        return _existing_tenant(owner, slug="second-place")

    @pytest.mark.asyncio
    async def test_moves_tenant_to_new_identity(
        self, provisioning_service, mock_identities, mock_tenants, shared_tenant, owner
    ):
        fresh = Identity(
            id=IdentityId.generate(), email=EmailAddress.parse("second@example.com")
        )
        mock_identities.create_identity.return_value = fresh
        mock_tenants.get_by_id = AsyncMock(return_value=shared_tenant)
        mock_tenants.replace_owner = AsyncMock(return_value=True)

        result = await provisioning_service.reassign_owner(
            shared_tenant.id, "second@example.com"
        )

        assert result.identity_id == fresh.id
        assert result.ledger_id is None
        mock_tenants.replace_owner.assert_awaited_once_with(
            shared_tenant.id, owner.id, fresh.id
        )

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, provisioning_service, mock_tenants):
        mock_tenants.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(TenantNotFoundError):
            await provisioning_service.reassign_owner(
                TenantId.generate(), "second@example.com"
            )

    @pytest.mark.asyncio
    async def test_registered_email_is_a_conflict(
        self, provisioning_service, mock_identities, mock_tenants, shared_tenant, owner
    ):
        mock_tenants.get_by_id = AsyncMock(return_value=shared_tenant)
        mock_identities.get_by_email.return_value = owner

        with pytest.raises(ConflictError):
            await provisioning_service.reassign_owner(
                shared_tenant.id, "nv@example.com"
            )

        mock_identities.create_identity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_email_taken_at_create_is_a_conflict(
        self, provisioning_service, mock_identities, mock_tenants, shared_tenant
    ):
        mock_tenants.get_by_id = AsyncMock(return_value=shared_tenant)
        mock_identities.create_identity.side_effect = EmailTakenError("taken")

        with pytest.raises(ConflictError):
            await provisioning_service.reassign_owner(
                shared_tenant.id, "second@example.com"
            )

    @pytest.mark.asyncio
    async def test_owner_changed_meanwhile_is_a_conflict(
        self, provisioning_service, mock_tenants, shared_tenant
    ):
        mock_tenants.get_by_id = AsyncMock(return_value=shared_tenant)
        mock_tenants.replace_owner = AsyncMock(return_value=False)

        with pytest.raises(ConflictError):
            await provisioning_service.reassign_owner(
                shared_tenant.id, "second@example.com"
            )
