"""
Test Factories

Helper functions for creating model instances in tests.
"""

import secrets
from uuid import uuid4

from backend.models.api_key import ApiKey
from backend.models.api_key_usage import ApiKeyUsage
from backend.models.site import Site, SiteMember
from backend.models.user import User
from backend.services.key_codec import generate_key


def make_user(**overrides) -> User:
    """Create a User instance with sensible defaults."""
    suffix = secrets.token_hex(4)
    defaults = {
        "id": uuid4(),
        "username": f"user-{suffix}",
        "display_name": "Test User",
        "email": f"user-{suffix}@test.com",
        "is_admin": False,
    }
    defaults.update(overrides)
    return User(**defaults)


def make_site(owner_id, **overrides) -> Site:
    """Create a Site instance with sensible defaults."""
    suffix = secrets.token_hex(4)
    defaults = {
        "id": uuid4(),
        "name": "Test Blog",
        "slug": f"blog-{suffix}",
        "owner_id": owner_id,
        "is_active": True,
    }
    defaults.update(overrides)
    return Site(**defaults)


def make_site_member(site_id, user_id, **overrides) -> SiteMember:
    defaults = {
        "id": uuid4(),
        "site_id": site_id,
        "user_id": user_id,
        "role": "author",
    }
    defaults.update(overrides)
    return SiteMember(**defaults)


def make_api_key(key_type: str = "user", **overrides) -> tuple[ApiKey, str]:
    """
    Create an ApiKey instance with a real generated secret.

    Returns (record, raw_key). Inserting the record directly bypasses the
    lifecycle service checks, which lets tests build any stored state.
    """
    generated = generate_key(key_type, environment="test")
    defaults = {
        "id": uuid4(),
        "name": "Test Key",
        "key_prefix": generated.prefix,
        "key_hash": generated.key_hash,
        "key_type": key_type,
        "user_id": None,
        "site_id": None,
        "scopes": ["read"],
        "rate_limit_per_minute": 60,
        "rate_limit_per_day": 10_000,
        "usage_count": 0,
        "is_active": True,
        "allowed_ips": [],
        "allowed_origins": [],
        "key_metadata": {},
    }
    defaults.update(overrides)
    return ApiKey(**defaults), generated.secret


def make_usage(api_key_id, **overrides) -> ApiKeyUsage:
    defaults = {
        "id": uuid4(),
        "api_key_id": api_key_id,
        "endpoint": "/api/v1/posts",
        "method": "GET",
        "status_code": 200,
        "response_time_ms": 10,
        "ip_address": "203.0.113.7",
    }
    defaults.update(overrides)
    return ApiKeyUsage(**defaults)


def bearer(raw_key: str) -> dict[str, str]:
    """Authorization header for a raw key."""
    return {"Authorization": f"Bearer {raw_key}"}
