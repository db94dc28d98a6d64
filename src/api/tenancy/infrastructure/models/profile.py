"""SQLAlchemy ORM model for the profiles table."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class ProfileModel(Base, TimestampMixin):
    """ORM model for profiles table.

    ``identity_id`` is unique but nullable: an identity has at most one
    profile, and any number of profiles may still be waiting for theirs.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    identity_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<ProfileModel(id={self.id}, email={self.email})>"
