"""Store faults and timeouts: authentication fails closed, unlimited metering fails open."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from eams.config import settings
from eams.database import async_session_maker
from eams.engine import audit
from eams.engine.audit import drain_audit_events
from eams.engine.quota import QuotaTracker
from eams.models import ApiLog
from eams.storage.directory import TenantDirectory


def _store_down(statement: str = "SELECT") -> OperationalError:
    return OperationalError(statement, {}, Exception("could not connect to server"))


async def _outcomes(account_id: str) -> list[str]:
    await drain_audit_events()
    async with async_session_maker() as session:
        result = await session.execute(
            select(ApiLog.outcome).where(ApiLog.organization_id == account_id)
        )
        return sorted(result.scalars().all())


@pytest.mark.asyncio
async def test_directory_fault_is_503(client, make_account, monkeypatch):
    account, headers = await make_account()

    async def broken_resolve(self, api_key):
        raise _store_down()

    monkeypatch.setattr(TenantDirectory, "resolve", broken_resolve)
    response = await client.get(f"/enterprise/{account['id']}", headers=headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "AUTH_UNAVAILABLE"
    assert headers["x-api-key"] not in response.text


@pytest.mark.asyncio
async def test_directory_timeout_is_503(client, make_account, monkeypatch):
    account, headers = await make_account()

    async def slow_resolve(self, api_key):
        await asyncio.sleep(5)

    monkeypatch.setattr(TenantDirectory, "resolve", slow_resolve)
    monkeypatch.setattr(settings, "directory_timeout_ms", 50)
    response = await client.get(f"/enterprise/{account['id']}/quota", headers=headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "AUTH_UNAVAILABLE"


@pytest.mark.asyncio
async def test_quota_store_fault_rejects_finite_quota(client, make_account, monkeypatch):
    account, headers = await make_account(monthly_quota=10)

    async def broken_upsert(self, account_id, period_start, monthly_quota):
        raise _store_down("INSERT")

    monkeypatch.setattr(QuotaTracker, "_upsert", broken_upsert)
    response = await client.get(f"/enterprise/{account['id']}", headers=headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "QUOTA_UNAVAILABLE"
    assert await _outcomes(account["id"]) == ["quota_unavailable"]


@pytest.mark.asyncio
async def test_quota_timeout_rejects_finite_quota(client, make_account, monkeypatch):
    account, headers = await make_account(monthly_quota=10)

    async def slow_upsert(self, account_id, period_start, monthly_quota):
        await asyncio.sleep(5)

    monkeypatch.setattr(QuotaTracker, "_upsert", slow_upsert)
    monkeypatch.setattr(settings, "quota_timeout_ms", 50)
    response = await client.get(f"/enterprise/{account['id']}", headers=headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "QUOTA_UNAVAILABLE"


@pytest.mark.asyncio
async def test_quota_store_fault_allows_unlimited_account(client, make_account, monkeypatch):
    account, headers = await make_account()

    async def broken_upsert(self, account_id, period_start, monthly_quota):
        raise _store_down("INSERT")

    monkeypatch.setattr(QuotaTracker, "_upsert", broken_upsert)
    response = await client.get(f"/enterprise/{account['id']}", headers=headers)
    assert response.status_code == 200
    assert response.headers["X-Quota-Limit"] == "unlimited"
    assert response.headers["X-Quota-Used"] == "0"


class _UnreachableSession:
    async def __aenter__(self):
        raise _store_down("INSERT")

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_audit_write_failure_does_not_fail_request(client, make_account, monkeypatch):
    account, headers = await make_account()
    monkeypatch.setattr(audit, "async_session_maker", _UnreachableSession)

    response = await client.get(f"/enterprise/{account['id']}", headers=headers)
    assert response.status_code == 200
    await drain_audit_events()

    monkeypatch.undo()
    assert await _outcomes(account["id"]) == []
