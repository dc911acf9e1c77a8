"""Tenant directory tests."""

import pytest

from eams.config import settings
from eams.database import async_session_maker
from eams.storage.directory import TenantDirectory


@pytest.mark.asyncio
async def test_resolve_returns_account_snapshot(seed_account):
    account, api_key = await seed_account(monthly_quota=100)
    async with async_session_maker() as session:
        context = await TenantDirectory(session).resolve(api_key)
    assert context is not None
    assert context.id == account.id
    assert context.tenant_id == account.tenant_id
    assert context.monthly_quota == 100
    assert context.api_key_enabled is True
    assert context.resolved_at is not None


@pytest.mark.asyncio
async def test_resolve_unknown_key_is_none(seed_account):
    await seed_account()
    async with async_session_maker() as session:
        directory = TenantDirectory(session)
        assert await directory.resolve("ek_" + "0" * 48) is None
        assert await directory.resolve("") is None


@pytest.mark.asyncio
async def test_point_lookups(seed_account):
    account, _ = await seed_account(user_id="owner-1")
    async with async_session_maker() as session:
        directory = TenantDirectory(session)
        assert (await directory.resolve_by_id(account.id)).id == account.id
        assert (await directory.resolve_by_tenant_id(account.tenant_id)).id == account.id
        assert (await directory.resolve_by_user_id("owner-1")).id == account.id
        assert await directory.resolve_by_id("missing") is None
        assert await directory.resolve_by_tenant_id("tenant_missing") is None
        assert await directory.resolve_by_user_id("nobody") is None


@pytest.mark.asyncio
async def test_regenerate_key_invalidates_previous_key(seed_account):
    account, old_key = await seed_account()
    async with async_session_maker() as session:
        new_key = await TenantDirectory(session).regenerate_key(account.id)
    assert new_key and new_key != old_key
    async with async_session_maker() as session:
        directory = TenantDirectory(session)
        assert await directory.resolve(old_key) is None
        assert (await directory.resolve(new_key)).id == account.id


@pytest.mark.asyncio
async def test_regenerate_unknown_account_is_none():
    async with async_session_maker() as session:
        assert await TenantDirectory(session).regenerate_key("missing") is None


@pytest.mark.asyncio
async def test_set_enabled_keeps_key_value(seed_account):
    account, api_key = await seed_account()
    async with async_session_maker() as session:
        updated = await TenantDirectory(session).set_enabled(account.id, False)
    assert updated.api_key_enabled is False
    assert updated.api_key_hash == account.api_key_hash
    async with async_session_maker() as session:
        context = await TenantDirectory(session).resolve(api_key)
    assert context is not None
    assert context.api_key_enabled is False


@pytest.mark.asyncio
async def test_cached_snapshot_is_evicted_on_rotation(seed_account, monkeypatch):
    monkeypatch.setattr(settings, "directory_cache_ttl_s", 60)
    account, old_key = await seed_account()
    async with async_session_maker() as session:
        assert await TenantDirectory(session).resolve(old_key) is not None
    async with async_session_maker() as session:
        await TenantDirectory(session).regenerate_key(account.id)
    async with async_session_maker() as session:
        assert await TenantDirectory(session).resolve(old_key) is None


@pytest.mark.asyncio
async def test_cached_snapshot_is_evicted_on_disable(seed_account, monkeypatch):
    monkeypatch.setattr(settings, "directory_cache_ttl_s", 60)
    account, api_key = await seed_account()
    async with async_session_maker() as session:
        assert (await TenantDirectory(session).resolve(api_key)).api_key_enabled
    async with async_session_maker() as session:
        await TenantDirectory(session).set_enabled(account.id, False)
    async with async_session_maker() as session:
        assert not (await TenantDirectory(session).resolve(api_key)).api_key_enabled
