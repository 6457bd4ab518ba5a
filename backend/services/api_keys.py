"""
API Key Lifecycle Service

Creates, updates and revokes API keys and manages explicit site grants.

Ownership shape per key type (enforced here and by the valid_ownership
table constraint):

    admin  no owner, no site
    user   owner, no site
    site   owner and site

Type, owner, site and scopes are fixed at creation. Callers needing different
scopes create a new key.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, NamedTuple
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.api_key import ApiKey, ApiKeyScope, KeyType
from backend.models.api_key_site_access import ApiKeySiteAccess
from backend.models.base import as_utc, utcnow
from backend.schemas.api_key import ApiKeyDetail, ApiKeySummary, SiteAccessResponse
from backend.services.exceptions import NotFoundError, ValidationError
from backend.services.key_codec import generate_key
from backend.services.key_store import KeyStore

logger = logging.getLogger(__name__)

# Scopes any key may hold; ADMIN is reserved for admin keys
STANDARD_SCOPES = frozenset({ApiKeyScope.READ, ApiKeyScope.WRITE, ApiKeyScope.DELETE})

MUTABLE_FIELDS = frozenset({
    "name",
    "description",
    "rate_limit_per_minute",
    "rate_limit_per_day",
    "allowed_ips",
    "allowed_origins",
    "metadata",
})
IMMUTABLE_FIELDS = frozenset({"key_type", "user_id", "site_id", "scopes"})


class ApiKeyCreate(BaseModel):
    """Options for a new key. Raw strings are checked by the service."""

    name: str
    description: str | None = None
    key_type: str = KeyType.USER.value
    user_id: UUID | None = None
    site_id: UUID | None = None
    scopes: list[str] | None = None
    rate_limit_per_minute: int | None = None
    rate_limit_per_day: int | None = None
    expires_at: datetime | None = None
    allowed_ips: list[str] = Field(default_factory=list)
    allowed_origins: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CreatedApiKey(NamedTuple):
    secret: str
    id: UUID
    key_prefix: str


def parse_key_type(value: Any) -> KeyType:
    try:
        return KeyType(value)
    except ValueError:
        raise ValidationError(f"Invalid key type: {value}", field="key_type") from None


def parse_scopes(values: Iterable[Any], field: str = "scopes") -> list[ApiKeyScope]:
    """Convert raw scope strings, dropping duplicates but keeping order."""
    scopes: list[ApiKeyScope] = []
    for value in values:
        try:
            scope = ApiKeyScope(value)
        except ValueError:
            raise ValidationError(f"Invalid scope: {value}", field=field) from None
        if scope not in scopes:
            scopes.append(scope)
    return scopes


def _check_rate_limit(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return value


def _check_string_list(value: Any, field: str) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings", field=field)
    return list(value)


class ApiKeyService:
    """Key lifecycle operations over a KeyStore."""

    def __init__(self, db_session: AsyncSession):
        self.store = KeyStore(db_session)
        self.settings = get_settings()

    async def create(self, options: ApiKeyCreate) -> CreatedApiKey:
        """
        Validate and persist a new key.

        Returns the plaintext key. This is the only time it is available;
        only its hash is stored.
        """
        if not options.name or not options.name.strip():
            raise ValidationError("Name is required", field="name")

        key_type = parse_key_type(options.key_type)
        self._check_ownership(key_type, options.user_id, options.site_id)

        scopes = parse_scopes(
            options.scopes if options.scopes is not None else [ApiKeyScope.READ]
        )
        if not scopes:
            raise ValidationError("At least one scope is required", field="scopes")
        if key_type != KeyType.ADMIN and ApiKeyScope.ADMIN in scopes:
            raise ValidationError(
                "Admin scope is only allowed on admin keys", field="scopes"
            )

        per_minute = _check_rate_limit(
            options.rate_limit_per_minute
            if options.rate_limit_per_minute is not None
            else self.settings.api_key_default_rate_limit_per_minute,
            "rate_limit_per_minute",
        )
        per_day = _check_rate_limit(
            options.rate_limit_per_day
            if options.rate_limit_per_day is not None
            else self.settings.api_key_default_rate_limit_per_day,
            "rate_limit_per_day",
        )

        if key_type == KeyType.SITE and not await self.store.site_exists(options.site_id):
            raise NotFoundError("Site", options.site_id)

        generated = generate_key(key_type)
        api_key = ApiKey(
            name=options.name.strip(),
            description=options.description,
            key_prefix=generated.prefix,
            key_hash=generated.key_hash,
            key_type=key_type.value,
            user_id=options.user_id,
            site_id=options.site_id,
            scopes=[scope.value for scope in scopes],
            rate_limit_per_minute=per_minute,
            rate_limit_per_day=per_day,
            expires_at=as_utc(options.expires_at),
            allowed_ips=list(options.allowed_ips),
            allowed_origins=list(options.allowed_origins),
            key_metadata=dict(options.metadata),
            is_active=True,
            usage_count=0,
        )
        await self.store.add_key(api_key)

        logger.info(
            "api_key_created",
            extra={
                "api_key_id": str(api_key.id),
                "key_prefix": api_key.key_prefix,
                "key_type": api_key.key_type,
                "user_id": str(api_key.user_id) if api_key.user_id else None,
            },
        )
        return CreatedApiKey(secret=generated.secret, id=api_key.id, key_prefix=generated.prefix)

    @staticmethod
    def _check_ownership(key_type: KeyType, user_id: UUID | None, site_id: UUID | None) -> None:
        if key_type == KeyType.ADMIN:
            if user_id is not None:
                raise ValidationError("Admin keys cannot have a user_id", field="user_id")
            if site_id is not None:
                raise ValidationError("Admin keys cannot have a site_id", field="site_id")
        elif key_type == KeyType.USER:
            if user_id is None:
                raise ValidationError("User keys require a user_id", field="user_id")
            if site_id is not None:
                raise ValidationError("User keys cannot have a site_id", field="site_id")
        elif key_type == KeyType.SITE:
            if user_id is None:
                raise ValidationError("Site keys require a user_id", field="user_id")
            if site_id is None:
                raise ValidationError("Site keys require a site_id", field="site_id")

    async def _require_key(self, key_id: UUID) -> ApiKey:
        api_key = await self.store.get_key(key_id)
        if api_key is None:
            raise NotFoundError("API key", key_id)
        return api_key

    async def get(self, key_id: UUID) -> ApiKeyDetail:
        """Full key detail with its explicit site grants."""
        api_key = await self._require_key(key_id)
        grants = await self.store.list_site_access(key_id)
        return ApiKeyDetail.model_validate(api_key).model_copy(
            update={"site_access": [SiteAccessResponse.model_validate(g) for g in grants]}
        )

    async def revoke(
        self,
        key_id: UUID,
        revoked_by: UUID | None = None,
        reason: str | None = None,
    ) -> ApiKey:
        """
        Revoke a key. Revocation is terminal.

        Revoking an already revoked key succeeds without touching the
        original revoked_at, actor or reason.
        """
        api_key = await self._require_key(key_id)
        if api_key.is_revoked:
            logger.info("api_key_already_revoked", extra={"api_key_id": str(key_id)})
            return api_key

        api_key.is_active = False
        api_key.revoked_at = utcnow()
        api_key.revoked_by = revoked_by
        api_key.revoke_reason = reason
        await self.store.flush()

        logger.info(
            "api_key_revoked",
            extra={
                "api_key_id": str(key_id),
                "key_prefix": api_key.key_prefix,
                "revoked_by": str(revoked_by) if revoked_by else None,
            },
        )
        return api_key

    async def update(self, key_id: UUID, patch: Mapping[str, Any]) -> ApiKey:
        """Apply a partial update to the mutable, non-sensitive fields."""
        immutable = sorted(IMMUTABLE_FIELDS & patch.keys())
        if immutable:
            raise ValidationError(
                f"Cannot change {', '.join(immutable)} after creation; create a new key instead",
                field=immutable[0],
            )
        unknown = sorted(patch.keys() - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown field: {unknown[0]}", field=unknown[0])

        api_key = await self._require_key(key_id)

        if "name" in patch:
            name = patch["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("Name is required", field="name")
            api_key.name = name.strip()
        if "description" in patch:
            api_key.description = patch["description"]
        for field in ("rate_limit_per_minute", "rate_limit_per_day"):
            if field in patch:
                setattr(api_key, field, _check_rate_limit(patch[field], field))
        for field in ("allowed_ips", "allowed_origins"):
            if field in patch:
                setattr(api_key, field, _check_string_list(patch[field] or [], field))
        if "metadata" in patch:
            metadata = patch["metadata"] or {}
            if not isinstance(metadata, dict):
                raise ValidationError("metadata must be an object", field="metadata")
            api_key.key_metadata = dict(metadata)

        await self.store.flush()
        logger.info(
            "api_key_updated",
            extra={"api_key_id": str(key_id), "fields": sorted(patch.keys())},
        )
        return api_key

    async def grant_site_access(
        self, key_id: UUID, site_id: UUID, scopes: Iterable[Any]
    ) -> ApiKeySiteAccess:
        """Grant a user key access to a site. Re-granting replaces the scopes."""
        api_key = await self._require_key(key_id)
        if api_key.key_type != KeyType.USER.value:
            raise ValidationError(
                "Site access can only be granted to user keys", field="key_type"
            )

        parsed = parse_scopes(scopes)
        if not parsed:
            raise ValidationError("At least one scope is required", field="scopes")
        if not set(parsed) <= STANDARD_SCOPES:
            raise ValidationError(
                "Site grants may only carry read, write or delete", field="scopes"
            )
        if not await self.store.site_exists(site_id):
            raise NotFoundError("Site", site_id)

        grant = await self.store.upsert_site_access(
            key_id, site_id, [scope.value for scope in parsed]
        )
        logger.info(
            "api_key_site_access_granted",
            extra={
                "api_key_id": str(key_id),
                "site_id": str(site_id),
                "scopes": grant.scopes,
            },
        )
        return grant

    async def revoke_site_access(self, key_id: UUID, site_id: UUID) -> None:
        await self._require_key(key_id)
        if not await self.store.delete_site_access(key_id, site_id):
            raise NotFoundError("Site access grant", site_id)
        logger.info(
            "api_key_site_access_revoked",
            extra={"api_key_id": str(key_id), "site_id": str(site_id)},
        )

    async def list_by_owner(self, user_id: UUID) -> list[ApiKeySummary]:
        """Keys owned by a user, newest first."""
        keys = await self.store.list_keys(user_id=user_id)
        return [ApiKeySummary.model_validate(k) for k in keys]

    async def list_keys(
        self,
        user_id: UUID | None = None,
        key_type: str | None = None,
        is_active: bool | None = None,
    ) -> list[ApiKeySummary]:
        """Admin listing with optional filters."""
        if key_type is not None:
            key_type = parse_key_type(key_type).value
        keys = await self.store.list_keys(user_id=user_id, key_type=key_type, is_active=is_active)
        return [ApiKeySummary.model_validate(k) for k in keys]
