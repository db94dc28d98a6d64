"""Identity store adapter over the identities table.

In production identities belong to the authentication subsystem; this
adapter gives the reconciliation engine the narrow view it needs: lookups
and ``create_identity``.
"""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import Identity
from tenancy.domain.value_objects import EmailAddress, IdentityId
from tenancy.infrastructure.models import IdentityModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.exceptions import EmailTakenError
from tenancy.ports.repositories import IIdentityProvider

_TABLE = "identities"


def _select() -> Select[tuple[IdentityModel]]:
    return select(IdentityModel).execution_options(populate_existing=True)


class SqlIdentityProvider(IIdentityProvider):
    """Identity provider backed by the identities table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def get_by_id(self, identity_id: IdentityId) -> Identity | None:
        stmt = _select().where(IdentityModel.id == identity_id.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_by_email(self, email: EmailAddress) -> Identity | None:
        stmt = _select().where(IdentityModel.email == email.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create_identity(self, email: EmailAddress) -> Identity:
        """Register a new, confirmed identity for ``email``.

        Identities created by provisioning are confirmed by the operator who
        requested them.

        Raises:
            EmailTakenError: If an identity already uses the email
        """
        if await self.get_by_email(email) is not None:
            raise EmailTakenError(f"Email '{email}' is already registered")

        identity = Identity(id=IdentityId.generate(), email=email, confirmed=True)
        self._session.add(
            IdentityModel(
                id=identity.id.value,
                email=identity.email.value,
                confirmed=identity.confirmed,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as e:
            self._probe.uniqueness_conflict(_TABLE, email.value)
            raise EmailTakenError(f"Email '{email}' is already registered") from e

        self._probe.identity_created(identity.id.value)
        return identity

    async def list_all(self) -> list[Identity]:
        stmt = _select().order_by(IdentityModel.id)
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: IdentityModel) -> Identity:
        return Identity(
            id=IdentityId(value=model.id),
            email=EmailAddress(value=model.email),
            confirmed=model.confirmed,
        )
