"""SQLAlchemy ORM model for the provisioning ledger."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, utc_now


class ProvisioningRecordModel(Base):
    """ORM model for provisioning_records table.

    ``tenant_id`` names the tenant an attempt targets; it is not a foreign
    key because a failed attempt may never create the tenant. A partial
    unique index allows at most one completed record per tenant while
    pending and failed retries accumulate freely.
    """

    __tablename__ = "provisioning_records"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    identity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    restaurant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    restaurant_slug: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_email: Mapped[str] = mapped_column(String(320), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), insert_default=utc_now, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_provisioning_records_completed_tenant",
            "tenant_id",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<ProvisioningRecordModel(id={self.id}, "
            f"tenant_id={self.tenant_id}, status={self.status})>"
        )
