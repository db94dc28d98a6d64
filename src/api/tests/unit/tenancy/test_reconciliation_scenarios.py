"""End-to-end reconciliation scenarios against SQLite.

Every scenario drives the real services, repositories and audit trigger
through ``services_factory``; drift is injected with plain SQL the way a
crashed or racing writer would leave it.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from infrastructure.audit import AuditLogRepository
from tenancy.application.value_objects import RepairKind
from tenancy.domain.aggregates import Profile, ProvisioningRecord, Tenant
from tenancy.domain.value_objects import (
    EmailAddress,
    ProfileRole,
    ProvisioningStatus,
    TenantId,
    TenantSlug,
    ViolationKind,
)
from tenancy.infrastructure.identity_provider import SqlIdentityProvider
from tenancy.infrastructure.models import TenantModel
from tenancy.infrastructure.profile_repository import ProfileRepository
from tenancy.infrastructure.provisioning_ledger import ProvisioningLedger
from tenancy.infrastructure.tenant_repository import TenantRepository
from tenancy.ports.exceptions import (
    ConflictError,
    OwnerAlreadyBoundError,
    SweepInProgressError,
)


async def _clear_owner(session, tenant_id: str) -> None:
    async with session.begin():
        await session.execute(
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(owner_identity_id=None)
        )


async def _set_owner(session, tenant_id: str, identity_id: str) -> None:
    async with session.begin():
        await session.execute(
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(owner_identity_id=identity_id)
        )


class TestProvisioning:
    """A new restaurant gets its own owner, profile and completed ledger entry."""

    @pytest.mark.asyncio
    async def test_nature_village(self, services_factory, session):
        async with services_factory() as services:
            admin = await services.provisioning.provision(
                "Head Office", "head-office", "admin@example.com"
            )
            await services.access_roles.grant(admin.identity_id, "administrator")

            result = await services.provisioning.provision(
                "Nature Village",
                "nature-village",
                "nv@example.com",
                actor="ops@example.com",
            )
            violations = await services.invariants.verify()

        assert result.identity_id != admin.identity_id
        assert violations == []

        async with session.begin():
            tenant = await TenantRepository(session).get_by_id(result.tenant_id)
            record = await ProvisioningLedger(session).get_by_id(result.ledger_id)
            profile = await ProfileRepository(session).get_by_identity(
                result.identity_id
            )
            entries = await AuditLogRepository(session).list_for_tenant(
                result.tenant_id.value
            )

        assert tenant.owner_identity_id == result.identity_id
        assert record.status is ProvisioningStatus.COMPLETED
        assert record.identity_id == result.identity_id
        assert profile.role is ProfileRole.OWNER
        assert {e.table_name for e in entries} == {"tenants", "provisioning_records"}
        assert {e.actor for e in entries} == {"ops@example.com"}

    @pytest.mark.asyncio
    async def test_second_tenant_for_an_owner_is_refused(self, services_factory):
        async with services_factory() as services:
            await services.provisioning.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )
            with pytest.raises(OwnerAlreadyBoundError):
                await services.provisioning.provision(
                    "Second Place", "second-place", "nv@example.com"
                )
            violations = await services.invariants.verify()

        assert violations == []

    @pytest.mark.asyncio
    async def test_refused_attempt_is_closed_failed(self, services_factory, session):
        async with services_factory() as services:
            await services.provisioning.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )
            with pytest.raises(OwnerAlreadyBoundError):
                await services.provisioning.provision(
                    "Second Place", "second-place", "nv@example.com"
                )

        async with session.begin():
            ledger = ProvisioningLedger(session)
            pending = await ledger.list_pending()
            completed = await ledger.list_completed()

        assert pending == []
        assert [r.restaurant_slug.value for r in completed] == ["nature-village"]

    @pytest.mark.asyncio
    async def test_administrator_may_own_several(self, services_factory):
        async with services_factory() as services:
            first = await services.provisioning.provision(
                "Head Office", "head-office", "admin@example.com"
            )
            await services.access_roles.grant(first.identity_id, "administrator")
            second = await services.provisioning.provision(
                "Test Kitchen", "test-kitchen", "admin@example.com"
            )
            violations = await services.invariants.verify()

        assert second.identity_id == first.identity_id
        assert [v.kind for v in violations] == [
            ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP
        ]

    @pytest.mark.asyncio
    async def test_existing_unbound_profile_is_bound(self, services_factory, session):
        email = EmailAddress.parse("nv@example.com")
        earlier = Profile.create(email=email, role=ProfileRole.STAFF)
        async with session.begin():
            await ProfileRepository(session).add(earlier)

        async with services_factory() as services:
            result = await services.provisioning.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )

        async with session.begin():
            profiles = await ProfileRepository(session).list_all()

        assert [p.id for p in profiles] == [earlier.id]
        assert profiles[0].identity_id == result.identity_id

    @pytest.mark.asyncio
    async def test_idempotency_key_provisions_once(self, services_factory, session):
        async with services_factory() as services:
            first = await services.provisioning.provision(
                "Nature Village",
                "nature-village",
                "nv@example.com",
                idempotency_key="req-1",
            )
            again = await services.provisioning.provision(
                "Nature Village",
                "nature-village",
                "nv@example.com",
                idempotency_key="req-1",
            )

        async with session.begin():
            completed = await ProvisioningLedger(session).list_completed()

        assert again.idempotent is True
        assert again.tenant_id == first.tenant_id
        assert len(completed) == 1

    @pytest.mark.asyncio
    async def test_concurrent_provisions_of_one_slug(self, services_factory, session):
        """Exactly one of two racing provisions of a slug wins."""

        async def provision(owner_email: str):
            async with services_factory() as services:
                return await services.provisioning.provision(
                    "Nature Village", "nature-village", owner_email
                )

        outcomes = await asyncio.gather(
            provision("first@example.com"),
            provision("second@example.com"),
            return_exceptions=True,
        )

        winners = [o for o in outcomes if not isinstance(o, BaseException)]
        losers = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)

        async with session.begin():
            tenants = await TenantRepository(session).list_all()
            pending = await ProvisioningLedger(session).list_pending()

        assert [t.id for t in tenants] == [winners[0].tenant_id]
        assert pending == []

    @pytest.mark.asyncio
    async def test_single_ownership_holds_over_a_sequence(
        self, services_factory, session
    ):
        """No sequence of provisions leaves an identity owning two tenants."""
        requests = [
            ("alpha", "a@example.com"),
            ("bravo", "b@example.com"),
            ("charlie", "a@example.com"),
            ("delta", "c@example.com"),
            ("bravo", "d@example.com"),
            ("echo", "b@example.com"),
            ("foxtrot", "e@example.com"),
        ]

        async with services_factory() as services:
            for slug, email in requests:
                try:
                    await services.provisioning.provision(slug.title(), slug, email)
                except ConflictError:
                    pass

                assert await services.invariants.verify() == []

        async with session.begin():
            tenants = await TenantRepository(session).list_all()

        slugs = sorted(t.slug.value for t in tenants)
        assert slugs == ["alpha", "bravo", "delta", "foxtrot"]


class TestRepairSweep:
    """The sweep restores what has one right answer and reports the rest."""

    @pytest.mark.asyncio
    async def test_backfills_owner_from_ledger(self, services_factory, session):
        async with services_factory() as services:
            result = await services.provisioning.provision(
                "Nature Village", "nature-village", "x@example.com"
            )
        await _clear_owner(session, result.tenant_id.value)

        async with services_factory() as services:
            before = await services.invariants.verify()
            report = await services.sweep.run(actor="sweeper")
            second = await services.sweep.run()

        assert [v.kind for v in before] == [ViolationKind.MISSING_OWNER]
        assert [(r.kind, r.after) for r in report.repairs] == [
            (RepairKind.OWNER_BACKFILLED, result.identity_id.value)
        ]
        assert report.is_clean
        assert report.violations_after == []
        assert second.repairs == []
        assert second.is_clean

        async with session.begin():
            tenant = await TenantRepository(session).get_by_id(result.tenant_id)
            entries = await AuditLogRepository(session).list_for_row(
                "tenants", result.tenant_id.value
            )

        assert tenant.owner_identity_id == result.identity_id
        assert entries[-1].actor == "sweeper"
        assert entries[-1].after["owner_identity_id"] == result.identity_id.value

    @pytest.mark.asyncio
    async def test_shared_owner_is_reported_and_left(self, services_factory, session):
        async with services_factory() as services:
            first = await services.provisioning.provision(
                "First Place", "first-place", "y@example.com"
            )
            second = await services.provisioning.provision(
                "Second Place", "second-place", "z@example.com"
            )
        await _set_owner(session, second.tenant_id.value, first.identity_id.value)

        async with services_factory() as services:
            report = await services.sweep.run()

        assert report.repairs == []
        assert not report.is_clean
        conflict = report.findings[0]
        assert conflict.kind is ViolationKind.OWNERSHIP_CONFLICT
        assert set(conflict.tenant_ids) == {
            first.tenant_id.value,
            second.tenant_id.value,
        }

        async with session.begin():
            owners = {
                t.owner_identity_id for t in await TenantRepository(session).list_all()
            }
        assert owners == {first.identity_id}

    @pytest.mark.asyncio
    async def test_reassigning_resolves_shared_owner(self, services_factory, session):
        async with services_factory() as services:
            first = await services.provisioning.provision(
                "First Place", "first-place", "y@example.com"
            )
            second = await services.provisioning.provision(
                "Second Place", "second-place", "z@example.com"
            )
        await _set_owner(session, second.tenant_id.value, first.identity_id.value)

        async with services_factory() as services:
            moved = await services.provisioning.reassign_owner(
                second.tenant_id, "second-owner@example.com"
            )
            violations = await services.invariants.verify()

        assert moved.identity_id not in (first.identity_id, second.identity_id)
        assert violations == []

    @pytest.mark.asyncio
    async def test_closes_abandoned_pending_record(self, services_factory, session):
        record = ProvisioningRecord.open(
            tenant_id=TenantId.generate(),
            restaurant_name="Nature Village",
            restaurant_slug=TenantSlug.parse("nature-village"),
            owner_email=EmailAddress.parse("nv@example.com"),
        )
        record.created_at = record.created_at - timedelta(hours=3)
        async with session.begin():
            await ProvisioningLedger(session).open(record)

        async with services_factory() as services:
            report = await services.sweep.run()

        assert [r.kind for r in report.repairs] == [RepairKind.LEDGER_ABANDONED]
        async with session.begin():
            stored = await ProvisioningLedger(session).get_by_id(record.id)
        assert stored.status is ProvisioningStatus.FAILED
        assert stored.error_message == "abandoned"

    @pytest.mark.asyncio
    async def test_completes_record_of_attempt_that_died_after_its_tenant(
        self, services_factory, session
    ):
        """The tenant stands with its owner; only the ledger write was lost."""
        email = EmailAddress.parse("nv@example.com")
        async with session.begin():
            identity = await SqlIdentityProvider(session).create_identity(email)
            record = ProvisioningRecord.open(
                tenant_id=TenantId.generate(),
                restaurant_name="Nature Village",
                restaurant_slug=TenantSlug.parse("nature-village"),
                owner_email=email,
                identity_id=identity.id,
            )
            record.created_at = record.created_at - timedelta(hours=3)
            await ProvisioningLedger(session).open(record)
            await TenantRepository(session).add(
                Tenant.create(
                    tenant_id=record.tenant_id,
                    name="Nature Village",
                    slug=record.restaurant_slug,
                    contact_email=email,
                    owner_identity_id=identity.id,
                )
            )

        async with services_factory() as services:
            report = await services.sweep.run()

        assert [r.kind for r in report.repairs] == [RepairKind.LEDGER_COMPLETED]
        async with session.begin():
            stored = await ProvisioningLedger(session).get_by_id(record.id)
        assert stored.status is ProvisioningStatus.COMPLETED
        assert stored.identity_id == identity.id

        # The completed record is what a later owner backfill restores from.
        await _clear_owner(session, record.tenant_id.value)
        async with services_factory() as services:
            second = await services.sweep.run()

        assert second.findings == []
        assert [(r.kind, r.after) for r in second.repairs] == [
            (RepairKind.OWNER_BACKFILLED, identity.id.value)
        ]
        assert second.is_clean

    @pytest.mark.asyncio
    async def test_duplicate_profile_is_reported(self, services_factory, session):
        async with services_factory() as services:
            result = await services.provisioning.provision(
                "Nature Village", "nature-village", "nv@example.com"
            )
        duplicate = Profile.create(
            email=EmailAddress.parse("nv@example.com"), role=ProfileRole.STAFF
        )
        async with session.begin():
            await ProfileRepository(session).add(duplicate)

        async with services_factory() as services:
            report = await services.sweep.run()

        assert report.repairs == []
        assert [(f.kind, f.profile_id) for f in report.findings] == [
            (ViolationKind.UNBOUND_PROFILE, duplicate.id.value)
        ]
        assert report.findings[0].identity_id == result.identity_id.value

    @pytest.mark.asyncio
    async def test_binds_profile_of_confirmed_identity(self, services_factory, session):
        email = EmailAddress.parse("staff@example.com")
        profile = Profile.create(email=email, role=ProfileRole.STAFF)
        async with session.begin():
            await ProfileRepository(session).add(profile)
            identity = await SqlIdentityProvider(session).create_identity(email)

        async with services_factory() as services:
            before = await services.invariants.verify()
            report = await services.sweep.run()
            after = await services.invariants.verify()

        assert [v.kind for v in before] == [ViolationKind.UNBOUND_PROFILE]
        assert [(r.kind, r.after) for r in report.repairs] == [
            (RepairKind.PROFILE_BOUND, identity.id.value)
        ]
        assert after == []

    @pytest.mark.asyncio
    async def test_one_sweep_at_a_time(self, services_factory, sweep_lock):
        assert await sweep_lock.try_acquire()
        try:
            async with services_factory() as services:
                with pytest.raises(SweepInProgressError):
                    await services.sweep.run()
        finally:
            await sweep_lock.release()

        async with services_factory() as services:
            report = await services.sweep.run()
        assert report.is_clean
