"""Port-level exceptions for the tenancy bounded context.

These exceptions are raised by repositories, the identity provider and the
application services. The presentation layer maps them to HTTP statuses and
console exit codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from tenancy.domain.invariants import InvariantViolation


class ConflictError(Exception):
    """Raised when a slug or email is already taken.

    Covers both the pre-write check and a unique constraint violation at the
    store, which is how a concurrent provision of the same slug surfaces.
    """

    pass


class OwnerAlreadyBoundError(ConflictError):
    """Raised when an identity that owns an active tenant would own another.

    Administrators are exempt.
    """

    def __init__(self, identity_id: str, tenant_ids: Sequence[str]) -> None:
        self.identity_id = identity_id
        self.tenant_ids = tuple(tenant_ids)
        owned = ", ".join(self.tenant_ids)
        super().__init__(f"Identity {identity_id} already owns tenant(s) {owned}")


class EmailTakenError(Exception):
    """Raised by the identity provider when the email is already registered."""

    pass


class IdentityCreateFailedError(Exception):
    """Raised when the identity provider could not create an identity.

    Provisioning does not retry; the ledger entry is marked failed.
    """

    pass


class InvariantViolationError(Exception):
    """Raised by callers that treat integrity findings as a failure.

    Carries the blocking violations that were found.
    """

    def __init__(self, violations: Sequence[InvariantViolation]) -> None:
        self.violations = list(violations)
        super().__init__(f"{len(self.violations)} invariant violation(s) found")


class ProvisioningInProgressError(Exception):
    """Raised when an idempotency key belongs to a provisioning still pending."""

    pass


class SweepInProgressError(Exception):
    """Raised when another repair sweep holds the sweep lock."""

    pass


class TenantNotFoundError(Exception):
    """Raised when the tenant an operation targets does not exist."""

    pass


class ConcurrentModificationError(Exception):
    """Raised when a guarded update finds the row changed since it was read.

    Repositories raise it when an optimistic version check fails; the
    surrounding transaction is rolled back.
    """

    pass


class InvalidProvisioningRequestError(ValueError):
    """Raised when provisioning input fails validation before any write."""

    pass
