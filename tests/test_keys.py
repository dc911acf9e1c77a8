"""Unit tests for key generation and hashing."""

import re

from eams.config import settings
from eams.utils.keys import (
    generate_api_key,
    generate_tenant_id,
    hash_api_key,
    key_prefix,
)


def test_api_key_format():
    """Keys are ek_ followed by 48 hex characters."""
    key = generate_api_key()
    assert re.fullmatch(r"ek_[0-9a-f]{48}", key)


def test_api_keys_are_unique():
    assert len({generate_api_key() for _ in range(50)}) == 50


def test_tenant_id_format():
    assert re.fullmatch(r"tenant_[0-9a-f]{16}", generate_tenant_id())


def test_hash_is_deterministic_and_salted(monkeypatch):
    """Same key hashes the same; a different salt changes the digest."""
    key = "ek_" + "a" * 48
    h1 = hash_api_key(key)
    assert h1 == hash_api_key(key)
    assert len(h1) == 64  # SHA256 hex
    monkeypatch.setattr(settings, "api_key_hash_salt", "another-salt")
    assert hash_api_key(key) != h1


def test_key_prefix_is_short():
    key = generate_api_key()
    assert key_prefix(key) == key[:10]
    assert key_prefix(key).startswith("ek_")
