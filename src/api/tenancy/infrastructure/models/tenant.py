"""SQLAlchemy ORM model for the tenants table."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class TenantModel(Base, TimestampMixin):
    """ORM model for tenants table.

    Slugs are unique among active tenants through a partial unique index,
    so two concurrent provisions of one slug cannot both insert. Rows are
    never deleted; ``deactivated_at`` retires a tenant.

    ``version`` is bumped on every update and checked by the UPDATE itself,
    turning guarded owner changes into compare-and-swap writes.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    owner_identity_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_tenants_active_slug",
            "slug",
            unique=True,
            postgresql_where=text("deactivated_at IS NULL"),
            sqlite_where=text("deactivated_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<TenantModel(id={self.id}, slug={self.slug})>"
