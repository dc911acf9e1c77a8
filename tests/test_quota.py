"""Quota tracker tests - period math and atomic check-and-increment."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from eams.database import async_session_maker
from eams.engine.quota import QuotaTracker, UsageSnapshot, month_start, next_month_start
from eams.models import ApiUsageRecord


def test_month_start_truncates_to_utc_month():
    moment = datetime(2026, 3, 17, 15, 42, tzinfo=timezone.utc)
    assert month_start(moment) == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_next_month_start_rolls_over_year():
    assert next_month_start(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)) == datetime(
        2027, 1, 1, tzinfo=timezone.utc
    )


def test_boundary_instant_belongs_to_new_period():
    boundary = datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc)
    assert month_start(boundary) == boundary


def test_remaining_is_none_when_unlimited():
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    end = datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert UsageSnapshot(used=7, quota=None, period_start=start, period_end=end).remaining is None
    assert UsageSnapshot(used=7, quota=5, period_start=start, period_end=end).remaining == 0
    assert UsageSnapshot(used=2, quota=5, period_start=start, period_end=end).remaining == 3


@pytest.mark.asyncio
async def test_exactly_quota_requests_succeed(seed_account):
    account, _ = await seed_account(monthly_quota=3)
    tracker = QuotaTracker()
    decisions = [await tracker.check_and_increment(account.id, 3) for _ in range(5)]
    assert [d.allowed for d in decisions] == [True, True, True, False, False]
    assert decisions[2].usage.used == 3
    assert decisions[4].usage.used == 3
    assert decisions[4].usage.remaining == 0


@pytest.mark.asyncio
async def test_concurrent_increments_never_overshoot(seed_account):
    account, _ = await seed_account(monthly_quota=5)
    tracker = QuotaTracker()
    decisions = await asyncio.gather(
        *(tracker.check_and_increment(account.id, 5) for _ in range(10))
    )
    assert sum(d.allowed for d in decisions) == 5
    async with async_session_maker() as session:
        usage = await tracker.get_usage(session, account.id, 5)
    assert usage.used == 5


@pytest.mark.asyncio
async def test_unlimited_always_allowed_and_counted(seed_account):
    account, _ = await seed_account(monthly_quota=None)
    tracker = QuotaTracker()
    for _ in range(4):
        decision = await tracker.check_and_increment(account.id, None)
        assert decision.allowed
    assert decision.usage.used == 4
    assert decision.usage.quota is None


@pytest.mark.asyncio
async def test_zero_quota_rejects_without_creating_counter(seed_account):
    account, _ = await seed_account(monthly_quota=0)
    decision = await QuotaTracker().check_and_increment(account.id, 0)
    assert not decision.allowed
    assert decision.usage.used == 0
    async with async_session_maker() as session:
        rows = (await session.execute(select(ApiUsageRecord))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_new_month_starts_a_new_counter(seed_account):
    account, _ = await seed_account(monthly_quota=1)
    january = QuotaTracker(time_provider=lambda: datetime(2026, 1, 31, 23, 59, tzinfo=timezone.utc))
    february = QuotaTracker(time_provider=lambda: datetime(2026, 2, 1, 0, 0, tzinfo=timezone.utc))

    assert (await january.check_and_increment(account.id, 1)).allowed
    assert not (await january.check_and_increment(account.id, 1)).allowed
    feb = await february.check_and_increment(account.id, 1)
    assert feb.allowed
    assert feb.usage.period_start == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert feb.usage.period_end == datetime(2026, 3, 1, tzinfo=timezone.utc)

    async with async_session_maker() as session:
        rows = (
            await session.execute(
                select(ApiUsageRecord).where(ApiUsageRecord.account_id == account.id)
            )
        ).scalars().all()
    assert sorted(r.request_count for r in rows) == [1, 1]


@pytest.mark.asyncio
async def test_get_usage_is_read_only(seed_account):
    account, _ = await seed_account(monthly_quota=10)
    tracker = QuotaTracker()
    await tracker.check_and_increment(account.id, 10)
    async with async_session_maker() as session:
        first = await tracker.get_usage(session, account.id, 10)
        second = await tracker.get_usage(session, account.id, 10)
    assert first.used == second.used == 1
