"""SQLAlchemy implementation of IAccessRoleRepository."""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import AccessRole
from tenancy.domain.value_objects import AccessRoleStatus, IdentityId
from tenancy.infrastructure.flush import flush_guarded
from tenancy.infrastructure.models import AccessRoleModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.repositories import IAccessRoleRepository

_TABLE = "access_roles"


def _select() -> Select[tuple[AccessRoleModel]]:
    return select(AccessRoleModel).execution_options(populate_existing=True)


class AccessRoleRepository(IAccessRoleRepository):
    """Access role store backed by the access_roles table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def get(self, identity_id: IdentityId, role: str) -> AccessRole | None:
        model = await self._load(identity_id, role)
        return self._to_domain(model) if model else None

    async def save(self, access_role: AccessRole) -> None:
        """Insert the assignment, or update status and grantor in place."""
        model = await self._load(access_role.identity_id, access_role.role)
        row_id = f"{access_role.identity_id}:{access_role.role}"

        if model is None:
            self._session.add(
                AccessRoleModel(
                    identity_id=access_role.identity_id.value,
                    role=access_role.role,
                    status=access_role.status.value,
                    granted_by=access_role.granted_by,
                )
            )
            await self._session.flush()
            self._probe.row_written(_TABLE, row_id, "insert")
            return

        model.status = access_role.status.value
        model.granted_by = access_role.granted_by
        await flush_guarded(self._session, self._probe, _TABLE, row_id)
        self._probe.row_written(_TABLE, row_id, "update")

    async def list_active_holders(self, role: str) -> list[AccessRole]:
        stmt = (
            _select()
            .where(
                AccessRoleModel.role == role,
                AccessRoleModel.status == AccessRoleStatus.ACTIVE.value,
            )
            .order_by(AccessRoleModel.identity_id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def _load(self, identity_id: IdentityId, role: str) -> AccessRoleModel | None:
        stmt = _select().where(
            AccessRoleModel.identity_id == identity_id.value,
            AccessRoleModel.role == role,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: AccessRoleModel) -> AccessRole:
        return AccessRole(
            identity_id=IdentityId(value=model.identity_id),
            role=model.role,
            status=AccessRoleStatus(model.status),
            granted_by=model.granted_by,
        )
