"""Repair sweep application service.

The sweep is the forward-recovery half of the provisioning saga. It scans
the stores for drift left by interrupted or racing writers and repairs what
has a single correct answer:

- an active tenant with no owner gets the identity of its newest completed
  ledger entry
- a ledger entry stuck in ``pending`` is closed ``failed`` once its tenant
  has another completed entry; past the stale threshold it is closed
  ``completed`` if its tenant stands owned by its identity, ``failed`` if not
- an unbound profile is bound to the confirmed identity with its email

Drift without a single correct answer, such as two tenants sharing an owner,
is reported as a finding and left for an operator.

Every repair is its own transaction and a guarded write: the row is re-read
and the guard re-checked just before the write, and a row that changed
since the scan is skipped rather than overwritten.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from shared_kernel.audit.context import audit_actor
from tenancy.application.observability import (
    DefaultRepairSweepProbe,
    RepairSweepProbe,
)
from tenancy.application.services.invariant_service import InvariantService
from tenancy.application.value_objects import (
    RepairAction,
    RepairKind,
    SweepError,
    SweepReport,
)
from tenancy.domain.aggregates import Profile, ProvisioningRecord, Tenant
from tenancy.domain.invariants import InvariantViolation
from tenancy.domain.value_objects import (
    ADMINISTRATOR_ROLE,
    IdentityId,
    ProvisioningStatus,
    ViolationKind,
)
from tenancy.ports.exceptions import ConcurrentModificationError, SweepInProgressError
from tenancy.ports.locks import ISweepLock
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)

ABANDONED_REASON = "abandoned"


def _utc_now() -> datetime:
    return datetime.now(UTC)


_SHARED_OWNER_KINDS = frozenset(
    {
        ViolationKind.OWNERSHIP_CONFLICT,
        ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP,
    }
)


class RepairSweepService:
    """Application service running the repair sweep."""

    def __init__(
        self,
        identities: IIdentityProvider,
        tenants: ITenantRepository,
        profiles: IProfileRepository,
        ledger: IProvisioningLedger,
        access_roles: IAccessRoleRepository,
        invariants: InvariantService,
        lock: ISweepLock,
        session: AsyncSession,
        stale_pending_after: timedelta = timedelta(hours=1),
        administrator_role: str = ADMINISTRATOR_ROLE,
        probe: RepairSweepProbe | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize RepairSweepService with dependencies.

        Args:
            identities: Identity store
            tenants: Tenant registry
            profiles: Profile store
            ledger: Provisioning ledger
            access_roles: Access role store
            invariants: Verification run before and after the repairs
            lock: Lock admitting one sweep at a time
            session: Database session for transaction management
            stale_pending_after: Age after which a pending entry is abandoned
            administrator_role: Access role whose holders may own several tenants
            probe: Optional domain probe for observability
            clock: Source of the current time
        """
        self._identities = identities
        self._tenants = tenants
        self._profiles = profiles
        self._ledger = ledger
        self._access_roles = access_roles
        self._invariants = invariants
        self._lock = lock
        self._session = session
        self._stale_pending_after = stale_pending_after
        self._administrator_role = administrator_role
        self._probe = probe or DefaultRepairSweepProbe()
        self._clock = clock

    async def run(self, *, actor: str | None = None) -> SweepReport:
        """Run one sweep to completion.

        Cancelling the task stops the sweep between repairs. Repairs already
        committed stay; the lock is released either way.

        Raises:
            SweepInProgressError: If another sweep holds the lock
        """
        if not await self._lock.try_acquire():
            self._probe.sweep_already_running()
            raise SweepInProgressError("A repair sweep is already running")

        report = SweepReport(started_at=self._clock())
        try:
            with audit_actor(actor):
                self._probe.sweep_started()
                report.violations_before = await self._invariants.verify()

                await self._backfill_owners(report)
                await self._close_stale_records(report)
                await self._bind_profiles(report)

                report.violations_after = await self._invariants.verify()
                self._report_shared_owners(report)
        except asyncio.CancelledError:
            self._probe.sweep_cancelled(len(report.repairs))
            raise
        finally:
            await self._lock.release()

        report.finished_at = self._clock()
        self._probe.sweep_finished(
            repairs=len(report.repairs),
            skipped=len(report.skipped),
            findings=len(report.findings),
            errors=len(report.errors),
        )
        return report

    async def _backfill_owners(self, report: SweepReport) -> None:
        async with self._session.begin():
            orphans = await self._tenants.list_without_owner()

        for tenant in orphans:
            try:
                await self._backfill_owner(tenant, report)
            except Exception as e:
                self._record_error(
                    report, RepairKind.OWNER_BACKFILLED, tenant.id.value, e
                )

    async def _backfill_owner(self, tenant: Tenant, report: SweepReport) -> None:
        """Restore the owner of ``tenant`` from its completed ledger entry."""
        action: RepairAction | None = None
        try:
            async with self._session.begin():
                record = await self._ledger.latest_completed_for_tenant(tenant.id)
                if record is None or record.identity_id is None:
                    self._record_finding(
                        report,
                        InvariantViolation(
                            kind=ViolationKind.UNPROVISIONED,
                            message=(
                                f"Tenant {tenant.id} has no owner and no completed "
                                "provisioning record to restore it from"
                            ),
                            tenant_ids=(tenant.id.value,),
                        ),
                    )
                    return

                owner = record.identity_id
                await self._tenants.lock_owner(owner)
                others = [
                    t.id.value
                    for t in await self._tenants.list_active_by_owner(owner)
                    if t.id != tenant.id
                ]
                if others and not await self._is_administrator(owner):
                    self._record_finding(
                        report,
                        InvariantViolation(
                            kind=ViolationKind.OWNERSHIP_CONFLICT,
                            message=(
                                f"Restoring owner {owner} on tenant {tenant.id} "
                                f"would share it with {', '.join(others)}"
                            ),
                            tenant_ids=tuple(sorted([tenant.id.value, *others])),
                            identity_id=owner.value,
                        ),
                    )
                    return

                action = RepairAction(
                    kind=RepairKind.OWNER_BACKFILLED,
                    table="tenants",
                    row_id=tenant.id.value,
                    field="owner_identity_id",
                    before=None,
                    after=owner.value,
                )
                applied = await self._tenants.set_owner_if_unset(tenant.id, owner)
        except ConcurrentModificationError:
            applied = False

        if action is not None:
            self._record_repair(report, action, applied)

    async def _close_stale_records(self, report: SweepReport) -> None:
        async with self._session.begin():
            pending = await self._ledger.list_pending()

        now = self._clock()
        for record in pending:
            try:
                await self._close_stale_record(record, now, report)
            except Exception as e:
                self._record_error(
                    report, RepairKind.LEDGER_ABANDONED, record.id.value, e
                )

    async def _close_stale_record(
        self, record: ProvisioningRecord, now: datetime, report: SweepReport
    ) -> None:
        """Close a pending entry that is superseded or too old to still be running.

        A stale attempt whose tenant exists, is active and is owned by the
        attempt's identity died after its last step and before the ledger
        write; it is closed ``completed``. Anything else is closed
        ``failed``.
        """
        action: RepairAction | None = None
        try:
            async with self._session.begin():
                superseded = (
                    await self._ledger.latest_completed_for_tenant(record.tenant_id)
                    is not None
                )
                stale = record.is_stale(now, self._stale_pending_after)
                if not superseded and not stale:
                    return

                closing = replace(record)
                if not superseded and await self._saga_finished(record):
                    closing.complete(record.identity_id)
                    kind = RepairKind.LEDGER_COMPLETED
                else:
                    closing.fail(ABANDONED_REASON)
                    kind = RepairKind.LEDGER_ABANDONED
                action = RepairAction(
                    kind=kind,
                    table="provisioning_records",
                    row_id=record.id.value,
                    field="status",
                    before=ProvisioningStatus.PENDING.value,
                    after=closing.status.value,
                )
                applied = await self._ledger.record_outcome(closing)
        except ConcurrentModificationError:
            applied = False

        if action is not None:
            self._record_repair(report, action, applied)

    async def _saga_finished(self, record: ProvisioningRecord) -> bool:
        if record.identity_id is None:
            return False
        tenant = await self._tenants.get_by_id(record.tenant_id)
        return (
            tenant is not None
            and tenant.is_active
            and tenant.owner_identity_id == record.identity_id
        )

    async def _bind_profiles(self, report: SweepReport) -> None:
        async with self._session.begin():
            unbound = await self._profiles.list_unbound()
            confirmed = {
                identity.email: identity.id
                for identity in await self._identities.list_all()
                if identity.confirmed
            }

        for profile in unbound:
            identity_id = confirmed.get(profile.email)
            if identity_id is None:
                continue
            try:
                await self._bind_profile(profile, identity_id, report)
            except Exception as e:
                self._record_error(
                    report, RepairKind.PROFILE_BOUND, profile.id.value, e
                )

    async def _bind_profile(
        self, profile: Profile, identity_id: IdentityId, report: SweepReport
    ) -> None:
        """Bind an unbound profile to the confirmed identity sharing its email.

        An identity that already has a profile is left alone and the
        duplicate is reported for an operator.
        """
        action: RepairAction | None = None
        try:
            async with self._session.begin():
                existing = await self._profiles.get_by_identity(identity_id)
                if existing is not None:
                    self._record_finding(
                        report,
                        InvariantViolation(
                            kind=ViolationKind.UNBOUND_PROFILE,
                            message=(
                                f"Profile {profile.id} ({profile.email}) cannot be "
                                f"bound: identity {identity_id} already has "
                                f"profile {existing.id}"
                            ),
                            identity_id=identity_id.value,
                            profile_id=profile.id.value,
                        ),
                    )
                    return

                action = RepairAction(
                    kind=RepairKind.PROFILE_BOUND,
                    table="profiles",
                    row_id=profile.id.value,
                    field="identity_id",
                    before=None,
                    after=identity_id.value,
                )
                applied = await self._profiles.bind_if_unbound(profile.id, identity_id)
        except ConcurrentModificationError:
            applied = False

        if action is not None:
            self._record_repair(report, action, applied)

    def _report_shared_owners(self, report: SweepReport) -> None:
        """Surface every owner still shared after the repairs, never splitting it."""
        for violation in report.violations_after:
            if violation.kind in _SHARED_OWNER_KINDS:
                self._record_finding(report, violation)

    async def _is_administrator(self, identity_id: IdentityId) -> bool:
        role = await self._access_roles.get(identity_id, self._administrator_role)
        return role is not None and role.is_active

    def _record_repair(
        self, report: SweepReport, action: RepairAction, applied: bool
    ) -> None:
        if applied:
            report.repairs.append(action)
            self._probe.repair_applied(action.kind.value, action.row_id)
        else:
            report.skipped.append(action)
            self._probe.repair_skipped(action.kind.value, action.row_id)

    def _record_finding(self, report: SweepReport, finding: InvariantViolation) -> None:
        if finding in report.findings:
            return
        report.findings.append(finding)
        self._probe.finding_recorded(finding.kind.value, finding.tenant_ids)

    def _record_error(
        self, report: SweepReport, kind: RepairKind, row_id: str, error: Exception
    ) -> None:
        report.errors.append(SweepError(kind=kind, row_id=row_id, error=repr(error)))
        self._probe.repair_failed(kind.value, row_id, repr(error))
