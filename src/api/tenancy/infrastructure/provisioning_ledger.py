"""SQLAlchemy implementation of IProvisioningLedger.

Records are opened ``pending`` and closed exactly once. Closing is a guarded
update: it only applies while the stored status is still ``pending``, so a
provisioning attempt and a repair sweep racing to close the same record
cannot both win.
"""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models import as_utc, utc_now
from tenancy.domain.aggregates import ProvisioningRecord
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProvisioningRecordId,
    ProvisioningStatus,
    TenantId,
    TenantSlug,
)
from tenancy.infrastructure.flush import flush_guarded
from tenancy.infrastructure.models import ProvisioningRecordModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.exceptions import ConflictError
from tenancy.ports.repositories import IProvisioningLedger

_TABLE = "provisioning_records"


def _select() -> Select[tuple[ProvisioningRecordModel]]:
    return select(ProvisioningRecordModel).execution_options(populate_existing=True)


class ProvisioningLedger(IProvisioningLedger):
    """Provisioning ledger backed by the provisioning_records table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def open(self, record: ProvisioningRecord) -> None:
        """Insert a pending record."""
        self._session.add(
            ProvisioningRecordModel(
                id=record.id.value,
                tenant_id=record.tenant_id.value,
                identity_id=record.identity_id.value if record.identity_id else None,
                restaurant_name=record.restaurant_name,
                restaurant_slug=record.restaurant_slug.value,
                owner_email=record.owner_email.value,
                status=record.status.value,
                error_message=record.error_message,
                idempotency_key=record.idempotency_key,
                created_at=record.created_at or utc_now(),
                completed_at=record.completed_at,
            )
        )
        await self._session.flush()
        self._probe.row_written(_TABLE, record.id.value, "insert")

    async def get_by_id(
        self, record_id: ProvisioningRecordId
    ) -> ProvisioningRecord | None:
        stmt = _select().where(ProvisioningRecordModel.id == record_id.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def latest_for_idempotency_key(
        self, idempotency_key: str
    ) -> ProvisioningRecord | None:
        stmt = (
            _select()
            .where(ProvisioningRecordModel.idempotency_key == idempotency_key)
            .order_by(
                ProvisioningRecordModel.created_at.desc(),
                ProvisioningRecordModel.id.desc(),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def latest_completed_for_tenant(
        self, tenant_id: TenantId
    ) -> ProvisioningRecord | None:
        stmt = (
            _select()
            .where(
                ProvisioningRecordModel.tenant_id == tenant_id.value,
                ProvisioningRecordModel.status == ProvisioningStatus.COMPLETED.value,
            )
            .order_by(
                ProvisioningRecordModel.completed_at.desc(),
                ProvisioningRecordModel.id.desc(),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_pending(self) -> list[ProvisioningRecord]:
        stmt = (
            _select()
            .where(ProvisioningRecordModel.status == ProvisioningStatus.PENDING.value)
            .order_by(ProvisioningRecordModel.created_at, ProvisioningRecordModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_completed(self) -> list[ProvisioningRecord]:
        stmt = (
            _select()
            .where(
                ProvisioningRecordModel.status == ProvisioningStatus.COMPLETED.value
            )
            .order_by(ProvisioningRecordModel.tenant_id, ProvisioningRecordModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def record_outcome(self, record: ProvisioningRecord) -> bool:
        """Persist a terminal transition made on the aggregate.

        Raises:
            ConflictError: If completing would give the tenant a second
                completed record
            ConcurrentModificationError: If the row changed mid-update
        """
        stmt = (
            _select()
            .where(ProvisioningRecordModel.id == record.id.value)
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None or model.status != ProvisioningStatus.PENDING.value:
            self._probe.guarded_update_skipped(_TABLE, record.id.value, "not_pending")
            return False

        model.status = record.status.value
        model.identity_id = record.identity_id.value if record.identity_id else None
        model.error_message = record.error_message
        model.completed_at = record.completed_at
        try:
            await flush_guarded(self._session, self._probe, _TABLE, record.id.value)
        except IntegrityError as e:
            self._probe.uniqueness_conflict(_TABLE, record.tenant_id.value)
            raise ConflictError(
                f"Tenant {record.tenant_id} already has a completed provisioning record"
            ) from e

        self._probe.row_written(_TABLE, record.id.value, "update")
        return True

    @staticmethod
    def _to_domain(model: ProvisioningRecordModel) -> ProvisioningRecord:
        return ProvisioningRecord(
            id=ProvisioningRecordId(value=model.id),
            tenant_id=TenantId(value=model.tenant_id),
            restaurant_name=model.restaurant_name,
            restaurant_slug=TenantSlug(value=model.restaurant_slug),
            owner_email=EmailAddress(value=model.owner_email),
            status=ProvisioningStatus(model.status),
            identity_id=(
                IdentityId(value=model.identity_id) if model.identity_id else None
            ),
            error_message=model.error_message,
            idempotency_key=model.idempotency_key,
            created_at=as_utc(model.created_at),
            completed_at=as_utc(model.completed_at),
        )
