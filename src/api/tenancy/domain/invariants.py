"""Integrity rules over a snapshot of the tenancy stores.

The checks are pure: they take everything they need as an
``IntegritySnapshot`` and return the violations they find, so the same rules
back the read-only verification, the repair sweep's before/after reports and
property tests over hand-built snapshots.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from tenancy.domain.aggregates import Identity, Profile, ProvisioningRecord, Tenant
from tenancy.domain.value_objects import IdentityId, ViolationKind


@dataclass(frozen=True)
class InvariantViolation:
    """A single integrity finding.

    Attributes:
        kind: Which rule is broken
        message: Human readable description
        tenant_ids: Tenants involved, sorted
        identity_id: Identity involved, if any
        profile_id: Profile involved, if any
    """

    kind: ViolationKind
    message: str
    tenant_ids: tuple[str, ...] = ()
    identity_id: str | None = None
    profile_id: str | None = None

    @property
    def is_blocking(self) -> bool:
        """Informational findings do not need repair."""
        return self.kind.is_blocking

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for reports and logs."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "tenant_ids": list(self.tenant_ids),
            "identity_id": self.identity_id,
            "profile_id": self.profile_id,
            "blocking": self.is_blocking,
        }


@dataclass(frozen=True)
class IntegritySnapshot:
    """Everything the integrity rules read, loaded in one pass.

    Attributes:
        tenants: Every tenant, active or not
        identities: Every identity known to the identity store
        profiles: Every profile
        completed_records: Ledger entries in the ``completed`` state
        administrators: Identities holding an active administrator role
    """

    tenants: Sequence[Tenant] = ()
    identities: Sequence[Identity] = ()
    profiles: Sequence[Profile] = ()
    completed_records: Sequence[ProvisioningRecord] = ()
    administrators: frozenset[IdentityId] = field(default_factory=frozenset)


def check_invariants(snapshot: IntegritySnapshot) -> list[InvariantViolation]:
    """Run every integrity rule against ``snapshot``."""
    violations: list[InvariantViolation] = []
    violations.extend(check_ownership(snapshot))
    violations.extend(check_unbound_profiles(snapshot))
    violations.extend(check_completed_records(snapshot))
    return violations


def check_ownership(snapshot: IntegritySnapshot) -> list[InvariantViolation]:
    """Owner references: present, resolvable, and not shared.

    A non-administrator identity may own at most one active tenant. An
    administrator owning several tenants is reported as an informational
    finding so that it stays visible.
    """
    known_identities = {identity.id for identity in snapshot.identities}
    owned: dict[IdentityId, list[str]] = defaultdict(list)
    violations: list[InvariantViolation] = []

    for tenant in sorted(snapshot.tenants, key=lambda t: t.id.value):
        if not tenant.is_active:
            continue
        if tenant.owner_identity_id is None:
            violations.append(
                InvariantViolation(
                    kind=ViolationKind.MISSING_OWNER,
                    message=f"Tenant {tenant.id} has no owner",
                    tenant_ids=(tenant.id.value,),
                )
            )
            continue
        if tenant.owner_identity_id not in known_identities:
            violations.append(
                InvariantViolation(
                    kind=ViolationKind.UNKNOWN_OWNER,
                    message=(
                        f"Tenant {tenant.id} is owned by unknown identity "
                        f"{tenant.owner_identity_id}"
                    ),
                    tenant_ids=(tenant.id.value,),
                    identity_id=tenant.owner_identity_id.value,
                )
            )
        owned[tenant.owner_identity_id].append(tenant.id.value)

    for owner_id in sorted(owned, key=lambda i: i.value):
        tenant_ids = tuple(owned[owner_id])
        if len(tenant_ids) < 2:
            continue
        if owner_id in snapshot.administrators:
            kind = ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP
            message = (
                f"Administrator {owner_id} owns {len(tenant_ids)} active tenants"
            )
        else:
            kind = ViolationKind.OWNERSHIP_CONFLICT
            message = f"Identity {owner_id} owns {len(tenant_ids)} active tenants"
        violations.append(
            InvariantViolation(
                kind=kind,
                message=message,
                tenant_ids=tenant_ids,
                identity_id=owner_id.value,
            )
        )

    return violations


def check_unbound_profiles(snapshot: IntegritySnapshot) -> list[InvariantViolation]:
    """Profiles without an identity link whose email a confirmed identity owns."""
    confirmed_by_email = {
        identity.email: identity
        for identity in snapshot.identities
        if identity.confirmed
    }
    violations: list[InvariantViolation] = []

    for profile in sorted(snapshot.profiles, key=lambda p: p.id.value):
        if profile.is_bound:
            continue
        identity = confirmed_by_email.get(profile.email)
        if identity is None:
            continue
        violations.append(
            InvariantViolation(
                kind=ViolationKind.UNBOUND_PROFILE,
                message=(
                    f"Profile {profile.id} ({profile.email}) is not bound to "
                    f"confirmed identity {identity.id}"
                ),
                identity_id=identity.id.value,
                profile_id=profile.id.value,
            )
        )

    return violations


def check_completed_records(
    snapshot: IntegritySnapshot,
) -> list[InvariantViolation]:
    """At most one completed ledger entry per tenant."""
    counts = Counter(record.tenant_id.value for record in snapshot.completed_records)
    return [
        InvariantViolation(
            kind=ViolationKind.MULTIPLE_COMPLETED_RECORDS,
            message=f"Tenant {tenant_id} has {count} completed provisioning records",
            tenant_ids=(tenant_id,),
        )
        for tenant_id, count in sorted(counts.items())
        if count > 1
    ]
