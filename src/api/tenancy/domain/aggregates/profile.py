"""Profile aggregate for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass

from tenancy.domain.exceptions import ProfileAlreadyBoundError
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProfileId,
    ProfileRole,
)


@dataclass
class Profile:
    """Display record binding an identity to an email and role.

    A profile created before its identity existed carries no identity link.
    Once the identity exists and is confirmed, the profile must be bound to
    it; an unbound profile matching a confirmed identity is drift.
    """

    id: ProfileId
    email: EmailAddress
    role: ProfileRole
    identity_id: IdentityId | None = None

    @classmethod
    def create(
        cls,
        email: EmailAddress,
        role: ProfileRole,
        identity_id: IdentityId | None = None,
    ) -> Profile:
        """Factory method for a new profile."""
        return cls(
            id=ProfileId.generate(),
            email=email,
            role=role,
            identity_id=identity_id,
        )

    @property
    def is_bound(self) -> bool:
        """Check whether the profile is linked to an identity."""
        return self.identity_id is not None

    def bind(self, identity_id: IdentityId) -> bool:
        """Link the profile to ``identity_id``.

        Returns:
            True if the link changed, False if it was already in place

        Raises:
            ProfileAlreadyBoundError: If linked to a different identity
        """
        if self.identity_id == identity_id:
            return False
        if self.identity_id is not None:
            raise ProfileAlreadyBoundError(
                f"Profile {self.id} is already bound to identity {self.identity_id}"
            )
        self.identity_id = identity_id
        return True
