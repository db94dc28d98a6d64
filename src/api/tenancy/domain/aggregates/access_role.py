"""Access role assignment."""

from __future__ import annotations

from dataclasses import dataclass

from tenancy.domain.value_objects import AccessRoleStatus, IdentityId


@dataclass
class AccessRole:
    """An elevated-privilege role held by an identity.

    Keyed by ``(identity_id, role)``. Revoked assignments are kept so they
    can be re-activated. Access roles never imply tenant ownership.
    """

    identity_id: IdentityId
    role: str
    status: AccessRoleStatus = AccessRoleStatus.ACTIVE
    granted_by: str | None = None

    @classmethod
    def grant(
        cls, identity_id: IdentityId, role: str, granted_by: str | None = None
    ) -> AccessRole:
        """Factory method for a new active assignment.

        Raises:
            ValueError: If the role name is blank
        """
        role = role.strip().lower()
        if not role:
            raise ValueError("Access role name must not be empty")
        return cls(identity_id=identity_id, role=role, granted_by=granted_by)

    @property
    def is_active(self) -> bool:
        return self.status is AccessRoleStatus.ACTIVE

    def activate(self, granted_by: str | None = None) -> bool:
        """Re-activate the assignment. Returns whether anything changed."""
        if self.is_active:
            return False
        self.status = AccessRoleStatus.ACTIVE
        self.granted_by = granted_by or self.granted_by
        return True

    def revoke(self) -> bool:
        """Revoke the assignment. Returns whether anything changed."""
        if not self.is_active:
            return False
        self.status = AccessRoleStatus.REVOKED
        return True
