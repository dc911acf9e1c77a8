"""API key and tenant id generation and hashing."""

import hashlib
import secrets

from eams.config import settings

API_KEY_PREFIX = "ek_"
KEY_PREFIX_LENGTH = 10


def generate_api_key() -> str:
    """New opaque API key: ek_ + 48 hex chars."""
    return f"{API_KEY_PREFIX}{secrets.token_hex(24)}"


def generate_tenant_id() -> str:
    """New external tenant handle: tenant_ + 16 hex chars."""
    return f"tenant_{secrets.token_hex(8)}"


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(
        f"{settings.api_key_hash_salt}:{api_key}".encode()
    ).hexdigest()


def key_prefix(api_key: str) -> str:
    """Leading characters safe to log and display."""
    return api_key[:KEY_PREFIX_LENGTH]
