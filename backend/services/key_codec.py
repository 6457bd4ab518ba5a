"""
API Key Codec

Generates opaque bearer keys and derives their storable forms.

Key format: ``{tag}_{env}_{random}`` where tag is ``sk`` (user), ``ss`` (site)
or ``sa`` (admin), env is the deployment tag and random is 32 bytes of
CSPRNG output, URL-safe base64 encoded. Only the SHA-256 hex digest of the
whole string is persisted, plus a display prefix that cannot authenticate.
"""

import hashlib
import secrets
from typing import NamedTuple

from backend.config import get_settings
from backend.models.api_key import KeyType

KEY_TYPE_TAGS: dict[KeyType, str] = {
    KeyType.USER: "sk",
    KeyType.SITE: "ss",
    KeyType.ADMIN: "sa",
}

RANDOM_BYTES = 32
PREFIX_RANDOM_CHARS = 8


class GeneratedKey(NamedTuple):
    secret: str
    prefix: str
    key_hash: str


def hash_key(secret: str) -> str:
    """SHA-256 hex digest of a raw key. Same input, same digest."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def generate_key(key_type: KeyType | str, environment: str | None = None) -> GeneratedKey:
    """Generate a new key for the given type. The secret is never stored."""
    tag = KEY_TYPE_TAGS[KeyType(key_type)]
    env = environment or get_settings().api_key_environment
    random_part = secrets.token_urlsafe(RANDOM_BYTES)

    secret = f"{tag}_{env}_{random_part}"
    prefix = f"{tag}_{env}_{random_part[:PREFIX_RANDOM_CHARS]}"
    return GeneratedKey(secret=secret, prefix=prefix, key_hash=hash_key(secret))


def display_prefix(raw_key: str) -> str:
    """
    Non-secret identifier for logging a presented key.

    Mirrors the stored prefix for well-formed keys; anything else is cut to
    the first 8 characters.
    """
    parts = raw_key.split("_", 2)
    if len(parts) == 3 and parts[0] in KEY_TYPE_TAGS.values():
        return f"{parts[0]}_{parts[1]}_{parts[2][:PREFIX_RANDOM_CHARS]}"
    return raw_key[:PREFIX_RANDOM_CHARS]
