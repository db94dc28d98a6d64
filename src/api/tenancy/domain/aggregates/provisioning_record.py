"""Provisioning ledger entry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tenancy.domain.exceptions import InvalidStatusTransitionError
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProvisioningRecordId,
    ProvisioningStatus,
    TenantId,
    TenantSlug,
)


@dataclass
class ProvisioningRecord:
    """One attempt to stand up a tenant.

    The record's status is the durable state of the provisioning saga. A
    record opened ``pending`` is closed exactly once, as ``completed`` when
    every step succeeded or ``failed`` with the reason otherwise. A record
    left ``pending`` means the attempt died part way and is picked up by the
    repair sweep.
    """

    id: ProvisioningRecordId
    tenant_id: TenantId
    restaurant_name: str
    restaurant_slug: TenantSlug
    owner_email: EmailAddress
    status: ProvisioningStatus = ProvisioningStatus.PENDING
    identity_id: IdentityId | None = None
    error_message: str | None = None
    idempotency_key: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def open(
        cls,
        tenant_id: TenantId,
        restaurant_name: str,
        restaurant_slug: TenantSlug,
        owner_email: EmailAddress,
        identity_id: IdentityId | None = None,
        idempotency_key: str | None = None,
    ) -> ProvisioningRecord:
        """Open a pending ledger entry for a new attempt."""
        return cls(
            id=ProvisioningRecordId.generate(),
            tenant_id=tenant_id,
            restaurant_name=restaurant_name,
            restaurant_slug=restaurant_slug,
            owner_email=owner_email,
            identity_id=identity_id,
            idempotency_key=idempotency_key,
            created_at=datetime.now(UTC),
        )

    @property
    def is_pending(self) -> bool:
        return self.status is ProvisioningStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status is ProvisioningStatus.COMPLETED

    def complete(self, identity_id: IdentityId | None = None) -> None:
        """Close the attempt as successful.

        Raises:
            InvalidStatusTransitionError: If the record is already terminal
        """
        self._leave_pending(ProvisioningStatus.COMPLETED)
        if identity_id is not None:
            self.identity_id = identity_id
        self.status = ProvisioningStatus.COMPLETED
        self.completed_at = datetime.now(UTC)

    def fail(self, reason: str) -> None:
        """Close the attempt as failed, keeping the reason.

        Raises:
            InvalidStatusTransitionError: If the record is already terminal
        """
        self._leave_pending(ProvisioningStatus.FAILED)
        self.status = ProvisioningStatus.FAILED
        self.error_message = reason
        self.completed_at = datetime.now(UTC)

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        """Check whether a pending attempt has outlived ``max_age``."""
        if not self.is_pending or self.created_at is None:
            return False
        return now - self.created_at > max_age

    def _leave_pending(self, target: ProvisioningStatus) -> None:
        if self.status.is_terminal:
            raise InvalidStatusTransitionError(
                record_id=self.id.value,
                current=self.status.value,
                target=target.value,
            )
