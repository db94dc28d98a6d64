"""Unit tests for the integrity rules over hand-built snapshots."""

from tenancy.domain.aggregates import Identity, Profile, ProvisioningRecord, Tenant
from tenancy.domain.invariants import (
    IntegritySnapshot,
    check_invariants,
    check_ownership,
)
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProfileRole,
    TenantId,
    TenantSlug,
    ViolationKind,
)


def _identity(email: str, confirmed: bool = True) -> Identity:
    return Identity(
        id=IdentityId.generate(), email=EmailAddress.parse(email), confirmed=confirmed
    )


def _tenant(slug: str, owner: Identity | None) -> Tenant:
    return Tenant(
        id=TenantId.generate(),
        name=slug.replace("-", " ").title(),
        slug=TenantSlug.parse(slug),
        contact_email=EmailAddress.parse(f"{slug}@example.com"),
        owner_identity_id=owner.id if owner else None,
    )


def _completed(tenant: Tenant, owner: Identity) -> ProvisioningRecord:
    record = ProvisioningRecord.open(
        tenant_id=tenant.id,
        restaurant_name=tenant.name,
        restaurant_slug=tenant.slug,
        owner_email=owner.email,
    )
    record.complete(owner.id)
    return record


class TestOwnership:
    """Single ownership of active tenants."""

    def test_clean_snapshot_has_no_violations(self):
        owner = _identity("nv@example.com")
        tenant = _tenant("nature-village", owner)
        snapshot = IntegritySnapshot(
            tenants=[tenant],
            identities=[owner],
            profiles=[
                Profile.create(owner.email, ProfileRole.OWNER, identity_id=owner.id)
            ],
            completed_records=[_completed(tenant, owner)],
        )

        assert check_invariants(snapshot) == []

    def test_two_tenants_sharing_owner_is_one_conflict_listing_both(self):
        shared = _identity("y@example.com")
        first = _tenant("first-place", shared)
        second = _tenant("second-place", shared)
        snapshot = IntegritySnapshot(tenants=[first, second], identities=[shared])

        violations = check_invariants(snapshot)

        conflicts = [
            v for v in violations if v.kind is ViolationKind.OWNERSHIP_CONFLICT
        ]
        assert len(conflicts) == 1
        assert set(conflicts[0].tenant_ids) == {first.id.value, second.id.value}
        assert conflicts[0].identity_id == shared.id.value
        assert conflicts[0].is_blocking

    def test_administrator_sharing_is_informational(self):
        admin = _identity("admin@example.com")
        snapshot = IntegritySnapshot(
            tenants=[_tenant("one", admin), _tenant("two", admin)],
            identities=[admin],
            administrators=frozenset({admin.id}),
        )

        violations = check_ownership(snapshot)

        assert [v.kind for v in violations] == [
            ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP
        ]
        assert not violations[0].is_blocking

    def test_deactivated_tenants_do_not_count(self):
        owner = _identity("y@example.com")
        retired = _tenant("retired", owner)
        retired.deactivate()
        snapshot = IntegritySnapshot(
            tenants=[retired, _tenant("current", owner)], identities=[owner]
        )

        assert check_ownership(snapshot) == []

    def test_missing_owner(self):
        tenant = _tenant("orphan", None)
        violations = check_ownership(IntegritySnapshot(tenants=[tenant]))

        assert [v.kind for v in violations] == [ViolationKind.MISSING_OWNER]
        assert violations[0].tenant_ids == (tenant.id.value,)

    def test_unknown_owner(self):
        ghost = _identity("ghost@example.com")
        violations = check_ownership(
            IntegritySnapshot(tenants=[_tenant("haunted", ghost)])
        )

        assert [v.kind for v in violations] == [ViolationKind.UNKNOWN_OWNER]
        assert violations[0].identity_id == ghost.id.value


class TestUnboundProfiles:
    def test_unbound_profile_matching_confirmed_identity(self):
        identity = _identity("staff@example.com")
        profile = Profile.create(identity.email, ProfileRole.STAFF)

        violations = check_invariants(
            IntegritySnapshot(identities=[identity], profiles=[profile])
        )

        assert [v.kind for v in violations] == [ViolationKind.UNBOUND_PROFILE]
        assert violations[0].profile_id == profile.id.value
        assert violations[0].identity_id == identity.id.value

    def test_unconfirmed_identity_is_not_drift(self):
        identity = _identity("staff@example.com", confirmed=False)
        profile = Profile.create(identity.email, ProfileRole.STAFF)
        snapshot = IntegritySnapshot(identities=[identity], profiles=[profile])

        assert check_invariants(snapshot) == []

    def test_profile_without_identity_is_not_drift(self):
        profile = Profile.create(
            EmailAddress.parse("later@example.com"), ProfileRole.STAFF
        )
        assert check_invariants(IntegritySnapshot(profiles=[profile])) == []


class TestCompletedRecords:
    def test_two_completed_records_for_one_tenant(self):
        owner = _identity("nv@example.com")
        tenant = _tenant("nature-village", owner)
        snapshot = IntegritySnapshot(
            tenants=[tenant],
            identities=[owner],
            completed_records=[_completed(tenant, owner), _completed(tenant, owner)],
        )

        violations = check_invariants(snapshot)

        assert [v.kind for v in violations] == [
            ViolationKind.MULTIPLE_COMPLETED_RECORDS
        ]
        assert violations[0].to_dict()["tenant_ids"] == [tenant.id.value]
