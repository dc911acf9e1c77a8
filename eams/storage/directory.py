"""Tenant directory - resolves API keys and alternate handles to accounts.

Lookups return ``None`` when nothing matches; callers decide how a miss
maps to an HTTP status. Key rotation and the enable toggle are single
conditional ``UPDATE`` statements, so exactly one key is valid at any
instant and no read-modify-write happens in application code.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eams.config import settings
from eams.models import EnterpriseAccount
from eams.schemas.context import AccountContext
from eams.utils.keys import generate_api_key, hash_api_key, key_prefix

logger = logging.getLogger(__name__)

_cache: dict[str, tuple[float, AccountContext]] = {}
_cache_lock = asyncio.Lock()


async def _get_cached(key_hash: str) -> AccountContext | None:
    ttl_s = settings.directory_cache_ttl_s
    if ttl_s <= 0:
        return None
    async with _cache_lock:
        entry = _cache.get(key_hash)
        if entry is None:
            return None
        expires_at, context = entry
        if expires_at <= time.monotonic():
            _cache.pop(key_hash, None)
            return None
        return context


async def _set_cached(key_hash: str, context: AccountContext) -> None:
    ttl_s = settings.directory_cache_ttl_s
    if ttl_s <= 0:
        return
    async with _cache_lock:
        _cache[key_hash] = (time.monotonic() + ttl_s, context)


async def invalidate_account(account_id: str) -> None:
    """Evict every cached snapshot of an account."""
    async with _cache_lock:
        stale = [h for h, (_, ctx) in _cache.items() if ctx.id == account_id]
        for key_hash in stale:
            _cache.pop(key_hash, None)


def clear_cache() -> None:
    """Drop all cached snapshots (tests)."""
    _cache.clear()


class TenantDirectory:
    """Point lookups and key administration over ``enterprise_accounts``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, api_key: str) -> AccountContext | None:
        """Resolve a presented key to an account snapshot, or None."""
        if not api_key:
            return None
        key_hash = hash_api_key(api_key)
        cached = await _get_cached(key_hash)
        if cached is not None:
            return cached.model_copy(update={"resolved_at": datetime.now(timezone.utc)})

        result = await self.db.execute(
            select(EnterpriseAccount).where(EnterpriseAccount.api_key_hash == key_hash)
        )
        account = result.scalar_one_or_none()
        if account is None:
            return None
        context = AccountContext.model_validate(account).model_copy(
            update={"resolved_at": datetime.now(timezone.utc)}
        )
        await _set_cached(key_hash, context)
        return context

    async def resolve_by_id(self, account_id: str) -> EnterpriseAccount | None:
        result = await self.db.execute(
            select(EnterpriseAccount).where(EnterpriseAccount.id == account_id)
        )
        return result.scalar_one_or_none()

    async def resolve_by_tenant_id(self, tenant_id: str) -> EnterpriseAccount | None:
        result = await self.db.execute(
            select(EnterpriseAccount).where(EnterpriseAccount.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def resolve_by_user_id(self, user_id: str) -> EnterpriseAccount | None:
        result = await self.db.execute(
            select(EnterpriseAccount).where(EnterpriseAccount.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def regenerate_key(self, account_id: str) -> str | None:
        """Replace the stored key; the previous key stops resolving at commit.

        Returns the new raw key, or None if the account does not exist.
        """
        new_key = generate_api_key()
        result = await self.db.execute(
            update(EnterpriseAccount)
            .where(EnterpriseAccount.id == account_id)
            .values(
                api_key_hash=hash_api_key(new_key),
                api_key_prefix=key_prefix(new_key),
                updated_at=datetime.now(timezone.utc),
            )
            .returning(EnterpriseAccount.id)
        )
        if result.first() is None:
            return None
        await self.db.commit()
        await invalidate_account(account_id)
        logger.info("api_key_regenerated account_id=%s prefix=%s", account_id, key_prefix(new_key))
        return new_key

    async def set_enabled(self, account_id: str, enabled: bool) -> EnterpriseAccount | None:
        """Flip the kill switch without touching the key value."""
        result = await self.db.execute(
            update(EnterpriseAccount)
            .where(EnterpriseAccount.id == account_id)
            .values(api_key_enabled=enabled, updated_at=datetime.now(timezone.utc))
            .returning(EnterpriseAccount.id)
        )
        if result.first() is None:
            return None
        await self.db.commit()
        await invalidate_account(account_id)
        logger.info("api_key_toggled account_id=%s enabled=%s", account_id, enabled)
        return await self.resolve_by_id(account_id)
