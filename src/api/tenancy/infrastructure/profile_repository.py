"""SQLAlchemy implementation of IProfileRepository."""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import Profile
from tenancy.domain.value_objects import (
    EmailAddress,
    IdentityId,
    ProfileId,
    ProfileRole,
)
from tenancy.infrastructure.flush import flush_guarded, flush_unique
from tenancy.infrastructure.models import ProfileModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.exceptions import ConcurrentModificationError
from tenancy.ports.repositories import IProfileRepository

_TABLE = "profiles"


def _select() -> Select[tuple[ProfileModel]]:
    return select(ProfileModel).execution_options(populate_existing=True)


class ProfileRepository(IProfileRepository):
    """Profile store backed by the profiles table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def add(self, profile: Profile) -> None:
        """Insert a new profile.

        Raises:
            ConflictError: If the identity already has a profile
        """
        self._session.add(
            ProfileModel(
                id=profile.id.value,
                identity_id=profile.identity_id.value if profile.identity_id else None,
                email=profile.email.value,
                role=profile.role.value,
            )
        )
        await flush_unique(
            self._session,
            self._probe,
            _TABLE,
            key=profile.identity_id.value if profile.identity_id else profile.id.value,
            message=f"Identity {profile.identity_id} already has a profile",
        )
        self._probe.row_written(_TABLE, profile.id.value, "insert")

    async def get_by_identity(self, identity_id: IdentityId) -> Profile | None:
        stmt = _select().where(ProfileModel.identity_id == identity_id.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_unbound_by_email(self, email: EmailAddress) -> Profile | None:
        stmt = (
            _select()
            .where(
                ProfileModel.email == email.value,
                ProfileModel.identity_id.is_(None),
            )
            .order_by(ProfileModel.created_at, ProfileModel.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_all(self) -> list[Profile]:
        stmt = _select().order_by(ProfileModel.id)
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_unbound(self) -> list[Profile]:
        stmt = (
            _select()
            .where(ProfileModel.identity_id.is_(None))
            .order_by(ProfileModel.created_at, ProfileModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def bind_if_unbound(
        self, profile_id: ProfileId, identity_id: IdentityId
    ) -> bool:
        """Link the profile only while it is unbound and the identity has none.

        Raises:
            ConcurrentModificationError: If the profile changed since it was
                read, or another profile took the identity meanwhile
        """
        stmt = _select().where(ProfileModel.id == profile_id.value).with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None or model.identity_id is not None:
            self._probe.guarded_update_skipped(_TABLE, profile_id.value, "bound")
            return False
        if await self.get_by_identity(identity_id) is not None:
            self._probe.guarded_update_skipped(
                _TABLE, profile_id.value, "identity_has_profile"
            )
            return False

        model.identity_id = identity_id.value
        try:
            await flush_guarded(self._session, self._probe, _TABLE, profile_id.value)
        except IntegrityError as e:
            self._probe.concurrent_modification(_TABLE, profile_id.value)
            raise ConcurrentModificationError(
                f"Identity {identity_id} was bound to another profile meanwhile"
            ) from e
        self._probe.row_written(_TABLE, profile_id.value, "update")
        return True

    @staticmethod
    def _to_domain(model: ProfileModel) -> Profile:
        return Profile(
            id=ProfileId(value=model.id),
            email=EmailAddress(value=model.email),
            role=ProfileRole(model.role),
            identity_id=(
                IdentityId(value=model.identity_id) if model.identity_id else None
            ),
        )
