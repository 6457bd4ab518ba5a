"""
Unit Tests for the API Key Codec

Key format, prefix derivation, hashing and uniqueness.
"""

import re

import pytest

from backend.models.api_key import KeyType
from backend.services.key_codec import (
    KEY_TYPE_TAGS,
    display_prefix,
    generate_key,
    hash_key,
)

KEY_PATTERN = re.compile(r"^(sk|ss|sa)_[a-z]+_[A-Za-z0-9_-]{43}$")


class TestGenerateKey:

    @pytest.mark.parametrize(
        "key_type,tag",
        [(KeyType.USER, "sk"), (KeyType.SITE, "ss"), (KeyType.ADMIN, "sa")],
    )
    def test_tag_matches_key_type(self, key_type, tag):
        generated = generate_key(key_type, environment="live")
        assert generated.secret.startswith(f"{tag}_live_")
        assert KEY_PATTERN.match(generated.secret)

    def test_accepts_raw_type_strings(self):
        assert generate_key("site", environment="test").secret.startswith("ss_test_")

    def test_environment_defaults_to_settings(self):
        generated = generate_key(KeyType.USER)
        assert generated.secret.startswith("sk_live_")

    def test_random_part_is_32_bytes_urlsafe(self):
        secret = generate_key(KeyType.USER, environment="live").secret
        random_part = secret.split("_", 2)[2]
        # 32 bytes base64url-encoded without padding
        assert len(random_part) == 43

    def test_prefix_is_tag_env_and_first_eight_random_chars(self):
        generated = generate_key(KeyType.USER, environment="live")
        random_part = generated.secret.split("_", 2)[2]
        assert generated.prefix == f"sk_live_{random_part[:8]}"
        assert generated.secret.startswith(generated.prefix)
        assert generated.prefix != generated.secret

    def test_hash_is_sha256_of_secret(self):
        generated = generate_key(KeyType.ADMIN, environment="live")
        assert generated.key_hash == hash_key(generated.secret)
        assert re.fullmatch(r"[0-9a-f]{64}", generated.key_hash)

    def test_ten_thousand_keys_are_unique(self):
        generated = [generate_key(KeyType.USER, environment="live") for _ in range(10_000)]
        assert len({g.secret for g in generated}) == 10_000
        assert len({g.key_hash for g in generated}) == 10_000

    def test_unknown_key_type_rejected(self):
        with pytest.raises(ValueError):
            generate_key("robot")


class TestHashKey:

    def test_deterministic(self):
        assert hash_key("sk_live_abc") == hash_key("sk_live_abc")

    def test_different_inputs_differ(self):
        assert hash_key("sk_live_abc") != hash_key("sk_live_abd")

    def test_known_digest(self):
        assert hash_key("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )


class TestDisplayPrefix:

    def test_well_formed_key_matches_stored_prefix(self):
        generated = generate_key(KeyType.SITE, environment="live")
        assert display_prefix(generated.secret) == generated.prefix

    def test_garbage_is_truncated(self):
        assert display_prefix("not-a-real-key-at-all") == "not-a-re"

    def test_every_tag_is_recognised(self):
        assert set(KEY_TYPE_TAGS.values()) == {"sk", "ss", "sa"}
