"""Value objects for the tenancy domain.

Identifiers, closed status sets and normalised inputs used by the tenancy
aggregates. Identifiers generated here are ULIDs; identity ids are opaque
strings because identities may originate in an external provider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from email_validator import EmailNotValidError, validate_email
from ulid import ULID

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_IDENTITY_ID_LENGTH = 255

# Access role whose holders may own several tenants. Only an active grant of
# this one role exempts an owner from single ownership; other roles do not.
ADMINISTRATOR_ROLE = "administrator"


@dataclass(frozen=True)
class TenantId:
    """Identifier for a Tenant aggregate.

    Uses ULID for sortability and distribution-friendly generation. The id is
    allocated before the tenant row exists so that the provisioning ledger can
    reference the tenant an attempt targets.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> TenantId:
        """Generate a new TenantId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> TenantId:
        """Create TenantId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid TenantId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class ProfileId:
    """Identifier for a Profile aggregate."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> ProfileId:
        """Generate a new ProfileId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> ProfileId:
        """Create ProfileId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid ProfileId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class ProvisioningRecordId:
    """Identifier for a ProvisioningRecord (ledger entry)."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> ProvisioningRecordId:
        """Generate a new ProvisioningRecordId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> ProvisioningRecordId:
        """Create ProvisioningRecordId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid ProvisioningRecordId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class IdentityId:
    """Identifier for an authenticated principal.

    Identity ids are opaque: the identity store may be an external provider,
    so only emptiness and length are checked.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> IdentityId:
        """Generate a new IdentityId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> IdentityId:
        """Create IdentityId from string value.

        Raises:
            ValueError: If value is blank or longer than 255 characters
        """
        stripped = value.strip()
        if not stripped or len(stripped) > MAX_IDENTITY_ID_LENGTH:
            raise ValueError(f"Invalid IdentityId: {value!r}")
        return cls(value=stripped)


@dataclass(frozen=True)
class EmailAddress:
    """A syntactically valid, normalised email address.

    Addresses are trimmed and lower-cased so that lookups by email are
    case-insensitive. Deliverability is not checked.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def parse(cls, raw: str) -> EmailAddress:
        """Validate and normalise ``raw``.

        Raises:
            ValueError: If the address is malformed
        """
        candidate = (raw or "").strip().lower()
        try:
            validated = validate_email(candidate, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address: {raw!r}") from e
        return cls(value=validated.normalized.lower())


@dataclass(frozen=True)
class TenantSlug:
    """URL-safe tenant handle, unique among active tenants."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def parse(cls, raw: str) -> TenantSlug:
        """Normalise ``raw`` and check it is lower-case words joined by hyphens.

        Raises:
            ValueError: If the slug is empty or malformed
        """
        candidate = (raw or "").strip().lower()
        if not SLUG_PATTERN.match(candidate):
            raise ValueError(f"Invalid tenant slug: {raw!r}")
        return cls(value=candidate)


class ProfileRole(StrEnum):
    """Role a profile holds within the platform."""

    OWNER = "owner"
    STAFF = "staff"
    ADMINISTRATOR = "administrator"


class ProvisioningStatus(StrEnum):
    """State of a provisioning attempt.

    ``pending`` moves to exactly one of the terminal states and never back.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check whether no further transition is allowed."""
        return self is not ProvisioningStatus.PENDING


class AccessRoleStatus(StrEnum):
    """Whether an access role assignment is in force."""

    ACTIVE = "active"
    REVOKED = "revoked"


class BookingStatus(StrEnum):
    """Lifecycle of a restaurant booking.

    Bookings are managed outside this service; the enum fixes the shared
    vocabulary only and enforces no transitions.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def default(cls) -> BookingStatus:
        """Status a new booking starts in."""
        return cls.PENDING


class ViolationKind(StrEnum):
    """Category of an integrity finding."""

    OWNERSHIP_CONFLICT = "ownership-conflict"
    ADMINISTRATOR_MULTI_OWNERSHIP = "administrator-multi-ownership"
    MISSING_OWNER = "missing-owner"
    UNKNOWN_OWNER = "unknown-owner"
    UNBOUND_PROFILE = "unbound-profile"
    MULTIPLE_COMPLETED_RECORDS = "multiple-completed-records"
    UNPROVISIONED = "unprovisioned"

    @property
    def is_blocking(self) -> bool:
        """Informational findings are reported but need no repair."""
        return self is not ViolationKind.ADMINISTRATOR_MULTI_OWNERSHIP
