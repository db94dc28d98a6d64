"""SQLAlchemy ORM model for the audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, JSONDocument, as_utc
from shared_kernel.audit.value_objects import AuditEntry, AuditOperation


class AuditLogModel(Base):
    """ORM model for the append-only audit_logs table.

    ``tenant_id`` and ``row_status`` are only filled for tables that have a
    tenant scope or a status column respectively.
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(63), nullable=False)
    row_id: Mapped[str] = mapped_column(String(255), nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    before: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    tenant_id: Mapped[str | None] = mapped_column(
        String(26), nullable=True, index=True
    )
    row_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (Index("ix_audit_logs_table_row", "table_name", "row_id"),)

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> AuditLogModel:
        """Build a row from an audit entry value object."""
        return cls(
            id=entry.id,
            table_name=entry.table_name,
            row_id=entry.row_id,
            actor=entry.actor,
            operation=entry.operation.value,
            before=entry.before,
            after=entry.after,
            tenant_id=entry.tenant_id,
            row_status=entry.row_status,
            occurred_at=entry.occurred_at,
        )

    def to_value_object(self) -> AuditEntry:
        """Convert this ORM model to an AuditEntry value object."""
        occurred_at = as_utc(self.occurred_at)
        assert occurred_at is not None
        return AuditEntry(
            id=self.id,
            table_name=self.table_name,
            row_id=self.row_id,
            actor=self.actor,
            operation=AuditOperation(self.operation),
            before=self.before,
            after=self.after,
            tenant_id=self.tenant_id,
            row_status=self.row_status,
            occurred_at=occurred_at,
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AuditLogModel(id={self.id}, table_name={self.table_name}, "
            f"row_id={self.row_id}, operation={self.operation})>"
        )
