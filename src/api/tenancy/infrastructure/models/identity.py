"""SQLAlchemy ORM model for the identities table.

Stands in for the authentication subsystem's user store. Other tables
reference identities by id without a foreign key, since in production the
identity store lives outside this database.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class IdentityModel(Base, TimestampMixin):
    """ORM model for identities table."""

    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<IdentityModel(id={self.id}, email={self.email})>"
