"""
API Key Access Resolver

Decides whether a validated key may perform an operation on a site.

Two orthogonal axes must both pass: what the key may do (scopes) and where
it may do it (site entitlement). The ADMIN scope implies every other scope.
Site entitlement is evaluated in a fixed order, per key type:

    1. admin key            allowed everywhere, no further checks
    2. scope gate           key lacks the required scope -> denied
    3. site key             allowed only on its own site
    4. user key             owner of the site, member of the site, or an
                            explicit grant that carries the required scope
    5. anything else        denied

IP and origin allow-lists live here too; the authentication dependency
applies them before any route runs.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.api_key import ApiKeyScope, KeyType
from backend.services import cache
from backend.services.exceptions import AuthorizationFailure, NetworkRestrictionFailure
from backend.services.key_store import KeyStore
from backend.services.key_validator import ValidatedIdentity

logger = logging.getLogger(__name__)


def has_scope(identity: ValidatedIdentity, scope: ApiKeyScope | str) -> bool:
    """True if the key carries the scope, or carries ADMIN."""
    return ApiKeyScope(scope) in identity.scopes or ApiKeyScope.ADMIN in identity.scopes


def is_ip_allowed(identity: ValidatedIdentity, ip: str) -> bool:
    """Empty allow-list means unrestricted; otherwise exact string match."""
    return not identity.allowed_ips or ip in identity.allowed_ips


def is_origin_allowed(identity: ValidatedIdentity, origin: str) -> bool:
    """Empty allow-list means unrestricted; otherwise exact string match."""
    return not identity.allowed_origins or origin in identity.allowed_origins


def check_network(identity: ValidatedIdentity, ip: str, origin: str | None) -> None:
    """Raise NetworkRestrictionFailure if the IP, or a presented origin, is not allowed."""
    if not is_ip_allowed(identity, ip):
        raise NetworkRestrictionFailure("IP address not allowed", NetworkRestrictionFailure.IP)
    if origin and not is_origin_allowed(identity, origin):
        raise NetworkRestrictionFailure("Origin not allowed", NetworkRestrictionFailure.ORIGIN)


class AccessResolver:
    """Site-level authorization over the key store."""

    def __init__(self, db_session: AsyncSession, use_cache: bool | None = None):
        self.store = KeyStore(db_session)
        self.use_cache = get_settings().enable_site_cache if use_cache is None else use_cache

    async def has_access_to_site(
        self,
        identity: ValidatedIdentity,
        site_id: UUID,
        required_scope: ApiKeyScope | str,
    ) -> bool:
        required = ApiKeyScope(required_scope)

        if identity.key_type == KeyType.ADMIN:
            return True

        if not has_scope(identity, required):
            return False

        if identity.key_type == KeyType.SITE:
            return identity.site_id == site_id

        if identity.key_type == KeyType.USER:
            if identity.user_id is not None:
                owner_id, member_ids = await self._site_owner_and_members(site_id)
                if owner_id == identity.user_id or identity.user_id in member_ids:
                    return True

            grant = await self.store.get_site_access(identity.id, site_id)
            return grant is not None and required.value in grant.scopes

        return False

    async def check_site_access(
        self,
        identity: ValidatedIdentity,
        site_id: UUID,
        required_scope: ApiKeyScope | str,
    ) -> None:
        """Raise AuthorizationFailure naming whether scope or site entitlement failed."""
        if identity.key_type != KeyType.ADMIN and not has_scope(identity, required_scope):
            raise AuthorizationFailure(
                f"Required scope: {ApiKeyScope(required_scope).value}",
                AuthorizationFailure.SCOPE,
            )
        if not await self.has_access_to_site(identity, site_id, required_scope):
            logger.info(
                "site_access_denied",
                extra={"api_key_id": str(identity.id), "site_id": str(site_id)},
            )
            raise AuthorizationFailure(
                "Access to this site is not allowed", AuthorizationFailure.SITE
            )

    async def _site_owner_and_members(self, site_id: UUID) -> tuple[UUID | None, set[UUID]]:
        cache_key = cache.site_access_key(str(site_id))
        if self.use_cache:
            cached = await cache.get_cached(cache_key)
            if cached is not None:
                owner = cached.get("owner_id")
                return (
                    UUID(owner) if owner else None,
                    {UUID(m) for m in cached.get("member_ids", [])},
                )

        owner_id = await self.store.get_site_owner_id(site_id)
        member_ids = await self.store.get_site_member_ids(site_id) if owner_id else set()

        if self.use_cache and owner_id is not None:
            await cache.set_cached(
                cache_key,
                {"owner_id": str(owner_id), "member_ids": sorted(str(m) for m in member_ids)},
            )
        return owner_id, member_ids
