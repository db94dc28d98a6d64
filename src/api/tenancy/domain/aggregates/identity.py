"""Identity as seen by the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass

from tenancy.domain.value_objects import EmailAddress, IdentityId


@dataclass(frozen=True)
class Identity:
    """An authenticated principal owned by the identity store.

    Tenancy only reads identities and asks the store to create new ones;
    it never edits them.
    """

    id: IdentityId
    email: EmailAddress
    confirmed: bool = True

    def __eq__(self, other: object) -> bool:
        """Identities are equal if they have the same ID."""
        if not isinstance(other, Identity):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on ID for use in sets and dicts."""
        return hash(self.id)
