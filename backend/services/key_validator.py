"""
API Key Validator

Turns a presented key string into a ValidatedIdentity, or None.

Unknown, inactive, revoked and expired keys all produce the same None so a
caller probing credentials cannot tell which condition applied.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.api_key import ApiKey, ApiKeyScope, KeyType
from backend.models.base import as_utc, utcnow
from backend.services.key_codec import hash_key
from backend.services.key_store import KeyStore


class ValidatedIdentity(BaseModel):
    """Authorization-ready projection of a key. Carries no secret material."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    key_type: KeyType
    user_id: UUID | None = None
    site_id: UUID | None = None
    scopes: frozenset[ApiKeyScope] = frozenset()
    rate_limit_per_minute: int
    rate_limit_per_day: int
    allowed_ips: tuple[str, ...] = ()
    allowed_origins: tuple[str, ...] = ()

    @classmethod
    def from_record(cls, api_key: ApiKey) -> "ValidatedIdentity":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key_type=KeyType(api_key.key_type),
            user_id=api_key.user_id,
            site_id=api_key.site_id,
            scopes=frozenset(ApiKeyScope(s) for s in api_key.scopes),
            rate_limit_per_minute=api_key.rate_limit_per_minute,
            rate_limit_per_day=api_key.rate_limit_per_day,
            allowed_ips=tuple(api_key.allowed_ips or ()),
            allowed_origins=tuple(api_key.allowed_origins or ()),
        )


def is_usable(api_key: ApiKey) -> bool:
    """Active, not revoked and not past expiry."""
    if not api_key.is_active or api_key.is_revoked:
        return False
    expires_at = as_utc(api_key.expires_at)
    return expires_at is None or expires_at > utcnow()


class KeyValidator:
    """Single hash lookup per call; never writes."""

    def __init__(self, db_session: AsyncSession):
        self.store = KeyStore(db_session)

    async def validate(self, raw_key: str) -> ValidatedIdentity | None:
        if not raw_key:
            return None

        api_key = await self.store.get_key_by_hash(hash_key(raw_key))
        if api_key is None or not is_usable(api_key):
            return None

        return ValidatedIdentity.from_record(api_key)
