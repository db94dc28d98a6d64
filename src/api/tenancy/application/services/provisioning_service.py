"""Provisioning application service.

Stands a tenant up across four stores that share no transaction: the
identity store, the provisioning ledger, the profile store and the tenant
registry. Each step commits on its own. The ledger entry, opened before any
other write of the attempt, carries the saga state: it is closed
``completed`` when every step succeeded and ``failed`` otherwise. Rows
written by the steps that did succeed are left in place for the repair
sweep; nothing is rolled back across steps.
"""

from __future__ import annotations

from dataclasses import replace

from sqlalchemy.ext.asyncio import AsyncSession

from shared_kernel.audit.context import audit_actor
from tenancy.application.observability import (
    DefaultProvisioningServiceProbe,
    ProvisioningServiceProbe,
)
from tenancy.application.value_objects import ProvisioningRequest, ProvisioningResult
from tenancy.domain.aggregates import Identity, Profile, ProvisioningRecord, Tenant
from tenancy.domain.exceptions import InvalidStatusTransitionError
from tenancy.domain.value_objects import (
    ADMINISTRATOR_ROLE,
    EmailAddress,
    IdentityId,
    ProfileRole,
    ProvisioningStatus,
    TenantId,
    TenantSlug,
)
from tenancy.ports.exceptions import (
    ConflictError,
    EmailTakenError,
    IdentityCreateFailedError,
    InvalidProvisioningRequestError,
    OwnerAlreadyBoundError,
    ProvisioningInProgressError,
    TenantNotFoundError,
)
from tenancy.ports.repositories import (
    IAccessRoleRepository,
    IIdentityProvider,
    IProfileRepository,
    IProvisioningLedger,
    ITenantRepository,
)


class ProvisioningService:
    """Application service for provisioning tenants and moving ownership."""

    def __init__(
        self,
        identities: IIdentityProvider,
        tenants: ITenantRepository,
        profiles: IProfileRepository,
        ledger: IProvisioningLedger,
        access_roles: IAccessRoleRepository,
        session: AsyncSession,
        administrator_role: str = ADMINISTRATOR_ROLE,
        probe: ProvisioningServiceProbe | None = None,
    ):
        """Initialize ProvisioningService with dependencies.

        Args:
            identities: Identity store
            tenants: Tenant registry
            profiles: Profile store
            ledger: Provisioning ledger
            access_roles: Access role store, consulted for the administrator
                exemption from single ownership
            session: Database session for transaction management
            administrator_role: Access role whose holders may own several tenants
            probe: Optional domain probe for observability
        """
        self._identities = identities
        self._tenants = tenants
        self._profiles = profiles
        self._ledger = ledger
        self._access_roles = access_roles
        self._session = session
        self._administrator_role = administrator_role
        self._probe = probe or DefaultProvisioningServiceProbe()

    async def provision(
        self,
        tenant_name: str,
        slug: str,
        owner_email: str,
        *,
        contact_email: str | None = None,
        idempotency_key: str | None = None,
        actor: str | None = None,
    ) -> ProvisioningResult:
        """Provision a tenant owned by the identity registered for ``owner_email``.

        Args:
            tenant_name: Display name of the restaurant
            slug: URL handle, unique among active tenants
            owner_email: Email of the owning identity; created if unknown
            contact_email: Public contact address (defaults to owner_email)
            idempotency_key: Repeated requests with one key provision once
            actor: Principal audit entries are attributed to

        Returns:
            The tenant, owner identity and ledger entry of the attempt

        Raises:
            InvalidProvisioningRequestError: If the input is malformed
            ConflictError: If the slug is taken
            OwnerAlreadyBoundError: If the owner already owns an active tenant
                and is not an administrator
            IdentityCreateFailedError: If the identity store failed
            ProvisioningInProgressError: If an attempt with the same
                idempotency key is still pending
        """
        request = self._validate(
            tenant_name, slug, owner_email, contact_email, idempotency_key
        )

        with audit_actor(actor):
            async with self._session.begin():
                replay = await self._replay(request)
                if replay is not None:
                    return replay
                if await self._tenants.get_active_by_slug(request.slug) is not None:
                    self._probe.slug_conflict(request.slug.value)
                    raise ConflictError(
                        f"Tenant slug '{request.slug}' is already in use"
                    )

            self._probe.provisioning_started(
                request.slug.value, request.owner_email.value
            )

            identity = await self._resolve_identity(request.owner_email)

            record = ProvisioningRecord.open(
                tenant_id=TenantId.generate(),
                restaurant_name=request.tenant_name,
                restaurant_slug=request.slug,
                owner_email=request.owner_email,
                identity_id=identity.id,
                idempotency_key=request.idempotency_key,
            )
            async with self._session.begin():
                await self._ledger.open(record)
            self._probe.ledger_opened(record.id.value, record.tenant_id.value)

            try:
                await self._ensure_profile(identity)

                async with self._session.begin():
                    await self._create_tenant(request, record.tenant_id, identity)

                completed = replace(record)
                completed.complete(identity.id)
                async with self._session.begin():
                    stored = await self._ledger.record_outcome(completed)
                if not stored:
                    raise InvalidStatusTransitionError(
                        record_id=record.id.value,
                        current="closed",
                        target=ProvisioningStatus.COMPLETED.value,
                    )
            except Exception as e:
                await self._close_failed(record, e)
                raise

        self._probe.provisioning_completed(
            tenant_id=record.tenant_id.value,
            identity_id=identity.id.value,
            ledger_id=record.id.value,
        )
        return ProvisioningResult(
            tenant_id=record.tenant_id,
            identity_id=identity.id,
            ledger_id=record.id,
        )

    async def reassign_owner(
        self,
        tenant_id: TenantId,
        new_owner_email: str,
        *,
        actor: str | None = None,
    ) -> ProvisioningResult:
        """Give a tenant a new, dedicated owner identity.

        This is how an operator resolves an ownership conflict: the tenant
        that should not share its owner is moved to a fresh identity. The
        owner changes only if it is still the one read at the start.

        Raises:
            InvalidProvisioningRequestError: If the email is malformed
            TenantNotFoundError: If no active tenant has ``tenant_id``
            ConflictError: If the email is already registered or the owner
                changed concurrently
            IdentityCreateFailedError: If the identity store failed
        """
        try:
            email = EmailAddress.parse(new_owner_email)
        except ValueError as e:
            raise InvalidProvisioningRequestError(str(e)) from e

        with audit_actor(actor):
            async with self._session.begin():
                tenant = await self._tenants.get_by_id(tenant_id)
                if tenant is None or not tenant.is_active:
                    raise TenantNotFoundError(f"Tenant {tenant_id} not found")
                if await self._identities.get_by_email(email) is not None:
                    raise ConflictError(f"Email '{email}' is already registered")

            try:
                async with self._session.begin():
                    identity = await self._identities.create_identity(email)
            except EmailTakenError as e:
                raise ConflictError(f"Email '{email}' is already registered") from e
            except Exception as e:
                raise IdentityCreateFailedError(
                    f"Identity store could not create '{email}': {e}"
                ) from e
            self._probe.identity_resolved(identity.id.value, created=True)

            await self._ensure_profile(identity)

            async with self._session.begin():
                moved = await self._tenants.replace_owner(
                    tenant.id, tenant.owner_identity_id, identity.id
                )
            if not moved:
                raise ConflictError(
                    f"Owner of tenant {tenant.id} changed while it was being reassigned"
                )

        self._probe.owner_reassigned(
            tenant_id=tenant.id.value,
            previous_owner=(
                tenant.owner_identity_id.value if tenant.owner_identity_id else None
            ),
            new_owner=identity.id.value,
        )
        return ProvisioningResult(
            tenant_id=tenant.id, identity_id=identity.id, ledger_id=None
        )

    @staticmethod
    def _validate(
        tenant_name: str,
        slug: str,
        owner_email: str,
        contact_email: str | None,
        idempotency_key: str | None,
    ) -> ProvisioningRequest:
        name = (tenant_name or "").strip()
        if not name:
            raise InvalidProvisioningRequestError("Tenant name must not be empty")
        try:
            tenant_slug = TenantSlug.parse(slug)
            owner = EmailAddress.parse(owner_email)
            contact = EmailAddress.parse(contact_email) if contact_email else owner
        except ValueError as e:
            raise InvalidProvisioningRequestError(str(e)) from e

        return ProvisioningRequest(
            tenant_name=name,
            slug=tenant_slug,
            owner_email=owner,
            contact_email=contact,
            idempotency_key=(idempotency_key or "").strip() or None,
        )

    async def _replay(self, request: ProvisioningRequest) -> ProvisioningResult | None:
        """Return the completed attempt for the request's idempotency key."""
        if request.idempotency_key is None:
            return None

        latest = await self._ledger.latest_for_idempotency_key(request.idempotency_key)
        if latest is None or latest.status is ProvisioningStatus.FAILED:
            return None
        if latest.is_pending:
            raise ProvisioningInProgressError(
                f"Provisioning for key '{request.idempotency_key}' is still pending"
            )

        identity_id = latest.identity_id
        if identity_id is None:
            tenant = await self._tenants.get_by_id(latest.tenant_id)
            identity_id = tenant.owner_identity_id if tenant else None
        if identity_id is None:
            return None

        self._probe.idempotent_replay(request.idempotency_key, latest.id.value)
        return ProvisioningResult(
            tenant_id=latest.tenant_id,
            identity_id=identity_id,
            ledger_id=latest.id,
            idempotent=True,
        )

    async def _resolve_identity(self, email: EmailAddress) -> Identity:
        """Find the identity for ``email`` or ask the identity store for one."""
        async with self._session.begin():
            identity = await self._identities.get_by_email(email)
        if identity is not None:
            self._probe.identity_resolved(identity.id.value, created=False)
            return identity

        try:
            async with self._session.begin():
                identity = await self._identities.create_identity(email)
        except Exception as e:
            raise IdentityCreateFailedError(
                f"Identity store could not create '{email}': {e}"
            ) from e

        self._probe.identity_resolved(identity.id.value, created=True)
        return identity

    async def _ensure_profile(self, identity: Identity) -> Profile:
        """Resolve the owner profile in its own transaction.

        A concurrent attempt for the same identity may insert the profile
        first; the insert then conflicts and the winner's profile is used.
        """
        try:
            async with self._session.begin():
                return await self._resolve_profile(identity)
        except ConflictError:
            async with self._session.begin():
                profile = await self._profiles.get_by_identity(identity.id)
            if profile is None:
                raise
            self._probe.profile_resolved(profile.id.value, "existing")
            return profile

    async def _resolve_profile(self, identity: Identity) -> Profile:
        """Find, bind or create the owner profile of ``identity``.

        A profile left unbound by an earlier signup is bound here rather
        than duplicated.
        """
        profile = await self._profiles.get_by_identity(identity.id)
        if profile is not None:
            self._probe.profile_resolved(profile.id.value, "existing")
            return profile

        unbound = await self._profiles.find_unbound_by_email(identity.email)
        if unbound is not None and await self._profiles.bind_if_unbound(
            unbound.id, identity.id
        ):
            unbound.bind(identity.id)
            self._probe.profile_resolved(unbound.id.value, "bound")
            return unbound

        profile = Profile.create(
            email=identity.email,
            role=ProfileRole.OWNER,
            identity_id=identity.id,
        )
        await self._profiles.add(profile)
        self._probe.profile_resolved(profile.id.value, "created")
        return profile

    async def _create_tenant(
        self,
        request: ProvisioningRequest,
        tenant_id: TenantId,
        identity: Identity,
    ) -> Tenant:
        await self._tenants.lock_owner(identity.id)
        owned = await self._tenants.list_active_by_owner(identity.id)
        if owned and not await self._is_administrator(identity.id):
            raise OwnerAlreadyBoundError(
                identity_id=identity.id.value,
                tenant_ids=[tenant.id.value for tenant in owned],
            )

        tenant = Tenant.create(
            tenant_id=tenant_id,
            name=request.tenant_name,
            slug=request.slug,
            contact_email=request.contact_email,
            owner_identity_id=identity.id,
        )
        try:
            await self._tenants.add(tenant)
        except ConflictError:
            self._probe.slug_conflict(request.slug.value)
            raise
        return tenant

    async def _is_administrator(self, identity_id: IdentityId) -> bool:
        role = await self._access_roles.get(identity_id, self._administrator_role)
        return role is not None and role.is_active

    async def _close_failed(self, record: ProvisioningRecord, error: Exception) -> None:
        """Close the attempt as failed.

        If the ledger cannot be written either, the entry stays pending and
        the repair sweep closes it later.
        """
        failed = replace(record)
        failed.fail(str(error) or type(error).__name__)
        try:
            async with self._session.begin():
                await self._ledger.record_outcome(failed)
        except Exception as close_error:
            self._probe.ledger_close_failed(record.id.value, repr(close_error))
            return
        self._probe.provisioning_failed(record.id.value, str(error))
