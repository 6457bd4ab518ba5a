"""SQLAlchemy ORM Models for Quillpress API."""

from backend.models.api_key import ApiKey, ApiKeyScope, KeyType
from backend.models.api_key_site_access import ApiKeySiteAccess
from backend.models.api_key_usage import ApiKeyUsage
from backend.models.base import Base, TimestampMixin
from backend.models.site import Site, SiteMember, SiteRole
from backend.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "ApiKey",
    "ApiKeyScope",
    "KeyType",
    "ApiKeySiteAccess",
    "ApiKeyUsage",
    "Site",
    "SiteMember",
    "SiteRole",
    "User",
]
