"""SQLAlchemy ORM model for the access_roles table."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class AccessRoleModel(Base, TimestampMixin):
    """ORM model for access_roles table, keyed by (identity_id, role)."""

    __tablename__ = "access_roles"

    identity_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    role: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    granted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<AccessRoleModel(identity_id={self.identity_id}, role={self.role})>"
