"""Quota tracker - per-tenant monthly request allotments.

Enforcement is a single conditional upsert per request::

    INSERT INTO api_usage_records (..., request_count) VALUES (..., 1)
    ON CONFLICT (account_id, period_start)
    DO UPDATE SET request_count = request_count + 1
    WHERE request_count < :quota
    RETURNING request_count

No row back means the cap was already reached. Two concurrent requests
can never both observe ``quota - 1`` and both pass, and the first
request of a period creates its counter in the same statement.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eams.config import settings
from eams.database import async_session_maker
from eams.models import ApiUsageRecord

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class UsageSnapshot:
    used: int
    quota: int | None
    period_start: datetime
    period_end: datetime

    @property
    def remaining(self) -> int | None:
        if self.quota is None:
            return None
        return max(self.quota - self.used, 0)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    usage: UsageSnapshot


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_start(moment: datetime) -> datetime:
    """First instant of the UTC calendar month containing ``moment``."""
    moment = _as_utc(moment)
    return datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)


def next_month_start(moment: datetime) -> datetime:
    """First instant of the following UTC month - the quota reset time."""
    start = month_start(moment)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class QuotaTracker:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        # Counters commit in their own short transaction so a failing
        # downstream handler cannot roll an increment back.
        self._session_factory = session_factory or async_session_maker
        self._time_provider = time_provider or _utc_now

    async def check_and_increment(
        self,
        account_id: str,
        monthly_quota: int | None,
        *,
        at: datetime | None = None,
    ) -> QuotaDecision:
        """Count one request against the account, or refuse it at the cap.

        Unlimited accounts are always allowed; their counter is kept for
        reporting and storage errors are only logged. For finite quotas
        storage errors and timeouts propagate so the caller can fail closed.
        """
        moment = _as_utc(at or self._time_provider())
        start = month_start(moment)
        end = next_month_start(moment)
        timeout = settings.quota_timeout_ms / 1000.0

        if monthly_quota is None:
            try:
                used = await asyncio.wait_for(self._upsert(account_id, start, None), timeout)
            except (SQLAlchemyError, asyncio.TimeoutError) as exc:
                logger.warning("usage_increment_failed account_id=%s", account_id, exc_info=exc)
                used = 0
            return QuotaDecision(
                allowed=True,
                usage=UsageSnapshot(used=used or 0, quota=None, period_start=start, period_end=end),
            )

        if monthly_quota > 0:
            used = await asyncio.wait_for(self._upsert(account_id, start, monthly_quota), timeout)
        else:
            used = None
        if used is not None:
            return QuotaDecision(
                allowed=True,
                usage=UsageSnapshot(
                    used=used, quota=monthly_quota, period_start=start, period_end=end
                ),
            )

        async with self._session_factory() as session:
            current = await asyncio.wait_for(self._read_count(session, account_id, start), timeout)
        logger.info(
            "quota_exceeded account_id=%s used=%s quota=%s", account_id, current, monthly_quota
        )
        return QuotaDecision(
            allowed=False,
            usage=UsageSnapshot(
                used=current, quota=monthly_quota, period_start=start, period_end=end
            ),
        )

    async def get_usage(
        self,
        db: AsyncSession,
        account_id: str,
        monthly_quota: int | None,
        *,
        at: datetime | None = None,
    ) -> UsageSnapshot:
        """Current period usage. Read-only."""
        moment = _as_utc(at or self._time_provider())
        start = month_start(moment)
        used = await self._read_count(db, account_id, start)
        return UsageSnapshot(
            used=used,
            quota=monthly_quota,
            period_start=start,
            period_end=next_month_start(moment),
        )

    async def _upsert(
        self, account_id: str, period_start: datetime, monthly_quota: int | None
    ) -> int | None:
        async with self._session_factory() as session:
            insert = _UPSERT_INSERTS.get(session.bind.dialect.name)
            if insert is None:
                raise NotImplementedError(
                    f"No atomic upsert for dialect {session.bind.dialect.name!r}"
                )
            stmt = insert(ApiUsageRecord).values(
                id=str(uuid4()),
                account_id=account_id,
                period_start=period_start,
                request_count=1,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["account_id", "period_start"],
                set_={"request_count": ApiUsageRecord.request_count + 1},
                where=(
                    ApiUsageRecord.request_count < monthly_quota
                    if monthly_quota is not None
                    else None
                ),
            ).returning(ApiUsageRecord.request_count)
            async with session.begin():
                row = (await session.execute(stmt)).first()
            return None if row is None else int(row[0])

    @staticmethod
    async def _read_count(db: AsyncSession, account_id: str, period_start: datetime) -> int:
        count = await db.scalar(
            select(ApiUsageRecord.request_count).where(
                ApiUsageRecord.account_id == account_id,
                ApiUsageRecord.period_start == period_start,
            )
        )
        return int(count or 0)


_quota_tracker: QuotaTracker | None = None


def get_quota_tracker() -> QuotaTracker:
    global _quota_tracker
    if _quota_tracker is None:
        _quota_tracker = QuotaTracker()
    return _quota_tracker


def reset_quota_tracker() -> None:
    global _quota_tracker
    _quota_tracker = None
