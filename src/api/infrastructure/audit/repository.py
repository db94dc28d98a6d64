"""Read access to the audit log.

Entries are only ever written by the trigger engine; this repository exists
for reporting and for the admin API.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.audit.models import AuditLogModel
from shared_kernel.audit.value_objects import AuditEntry


class AuditLogRepository:
    """Queries over the audit_logs table using the caller's session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_row(self, table_name: str, row_id: str) -> list[AuditEntry]:
        """List entries for one row, oldest first."""
        stmt = (
            select(AuditLogModel)
            .where(
                AuditLogModel.table_name == table_name,
                AuditLogModel.row_id == row_id,
            )
            .order_by(AuditLogModel.occurred_at, AuditLogModel.id)
        )
        result = await self._session.execute(stmt)
        return [model.to_value_object() for model in result.scalars().all()]

    async def list_for_tenant(self, tenant_id: str) -> list[AuditEntry]:
        """List entries scoped to ``tenant_id``, oldest first."""
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.tenant_id == tenant_id)
            .order_by(AuditLogModel.occurred_at, AuditLogModel.id)
        )
        result = await self._session.execute(stmt)
        return [model.to_value_object() for model in result.scalars().all()]

    async def list_recent(self, limit: int = 100) -> list[AuditEntry]:
        """List the newest entries, newest first."""
        stmt = (
            select(AuditLogModel)
            .order_by(AuditLogModel.occurred_at.desc(), AuditLogModel.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [model.to_value_object() for model in result.scalars().all()]
