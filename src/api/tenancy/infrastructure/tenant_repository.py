"""SQLAlchemy implementation of ITenantRepository.

Slug uniqueness is left to the partial unique index on active tenants: the
insert itself is the check, so two concurrent inserts of one slug cannot
both succeed. Single ownership has no index to lean on, so callers take
the per-owner lock before checking it and writing. Owner changes are
guarded updates: the row is re-read, the guard re-checked and the UPDATE
carries the version that was read.
"""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models import as_utc, utc_now
from tenancy.domain.aggregates import Tenant
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    TenantId,
    TenantSlug,
)
from tenancy.infrastructure.flush import flush_guarded, flush_unique
from tenancy.infrastructure.locks import lock_owner_for_transaction
from tenancy.infrastructure.models import TenantModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.repositories import ITenantRepository

_TABLE = "tenants"


def _select() -> Select[tuple[TenantModel]]:
    # The identity map may hold rows read in an earlier transaction of this
    # session; always overwrite them with what the store holds now.
    return select(TenantModel).execution_options(populate_existing=True)


class TenantRepository(ITenantRepository):
    """Tenant registry backed by the tenants table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
    ) -> None:
        """Initialize repository with database session.

        Args:
            session: AsyncSession shared with the calling service
            probe: Optional domain probe for observability
        """
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def add(self, tenant: Tenant) -> None:
        """Insert a new tenant row.

        Raises:
            ConflictError: If an active tenant already uses the slug
        """
        model = TenantModel(
            id=tenant.id.value,
            name=tenant.name,
            slug=tenant.slug.value,
            contact_email=tenant.contact_email.value,
            owner_identity_id=(
                tenant.owner_identity_id.value if tenant.owner_identity_id else None
            ),
            created_at=tenant.created_at or utc_now(),
            deactivated_at=tenant.deactivated_at,
        )
        self._session.add(model)
        await flush_unique(
            self._session,
            self._probe,
            _TABLE,
            key=tenant.slug.value,
            message=f"Tenant slug '{tenant.slug}' is already in use",
        )
        self._probe.row_written(_TABLE, tenant.id.value, "insert")

    async def get_by_id(self, tenant_id: TenantId) -> Tenant | None:
        model = await self._load(tenant_id)
        return self._to_domain(model) if model else None

    async def get_active_by_slug(self, slug: TenantSlug) -> Tenant | None:
        stmt = _select().where(
            TenantModel.slug == slug.value,
            TenantModel.deactivated_at.is_(None),
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_all(self) -> list[Tenant]:
        stmt = _select().order_by(TenantModel.id)
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_active_by_owner(self, identity_id: IdentityId) -> list[Tenant]:
        stmt = (
            _select()
            .where(
                TenantModel.owner_identity_id == identity_id.value,
                TenantModel.deactivated_at.is_(None),
            )
            .order_by(TenantModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_without_owner(self) -> list[Tenant]:
        stmt = (
            _select()
            .where(
                TenantModel.owner_identity_id.is_(None),
                TenantModel.deactivated_at.is_(None),
            )
            .order_by(TenantModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def lock_owner(self, identity_id: IdentityId) -> None:
        await lock_owner_for_transaction(self._session, identity_id.value)

    async def set_owner_if_unset(
        self, tenant_id: TenantId, identity_id: IdentityId
    ) -> bool:
        """Set the owner only while it is still null."""
        model = await self._load(tenant_id, for_update=True)
        if model is None or model.deactivated_at is not None:
            self._probe.guarded_update_skipped(_TABLE, tenant_id.value, "inactive")
            return False
        if model.owner_identity_id is not None:
            self._probe.guarded_update_skipped(_TABLE, tenant_id.value, "owner_set")
            return False

        model.owner_identity_id = identity_id.value
        await flush_guarded(self._session, self._probe, _TABLE, tenant_id.value)
        self._probe.row_written(_TABLE, tenant_id.value, "update")
        return True

    async def replace_owner(
        self,
        tenant_id: TenantId,
        expected_owner: IdentityId | None,
        new_owner: IdentityId,
    ) -> bool:
        """Move ownership only while the owner is still ``expected_owner``."""
        model = await self._load(tenant_id, for_update=True)
        if model is None or model.deactivated_at is not None:
            self._probe.guarded_update_skipped(_TABLE, tenant_id.value, "inactive")
            return False
        expected = expected_owner.value if expected_owner else None
        if model.owner_identity_id != expected:
            self._probe.guarded_update_skipped(
                _TABLE, tenant_id.value, "owner_changed"
            )
            return False

        model.owner_identity_id = new_owner.value
        await flush_guarded(self._session, self._probe, _TABLE, tenant_id.value)
        self._probe.row_written(_TABLE, tenant_id.value, "update")
        return True

    async def deactivate(self, tenant_id: TenantId) -> bool:
        model = await self._load(tenant_id, for_update=True)
        if model is None or model.deactivated_at is not None:
            return False

        tenant = self._to_domain(model)
        tenant.deactivate()
        model.deactivated_at = tenant.deactivated_at
        await flush_guarded(self._session, self._probe, _TABLE, tenant_id.value)
        self._probe.row_written(_TABLE, tenant_id.value, "update")
        return True

    async def _load(
        self, tenant_id: TenantId, for_update: bool = False
    ) -> TenantModel | None:
        stmt = _select().where(TenantModel.id == tenant_id.value)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: TenantModel) -> Tenant:
        return Tenant(
            id=TenantId(value=model.id),
            name=model.name,
            slug=TenantSlug(value=model.slug),
            contact_email=EmailAddress(value=model.contact_email),
            owner_identity_id=(
                IdentityId(value=model.owner_identity_id)
                if model.owner_identity_id
                else None
            ),
            created_at=as_utc(model.created_at),
            deactivated_at=as_utc(model.deactivated_at),
        )
