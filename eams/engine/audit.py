"""Authentication audit events.

Each resolution attempt is written to ``api_logs`` from a detached task
so the request path never waits on it. Write failures are logged and
dropped.
"""

import asyncio
import enum
import logging

from fastapi import Request

from eams.config import settings
from eams.database import async_session_maker
from eams.models import ApiLog

logger = logging.getLogger(__name__)

_pending: set[asyncio.Task] = set()


class AuthOutcome(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    ACCESS_DISABLED = "access_disabled"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    LOOKUP_FAILED = "lookup_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    QUOTA_UNAVAILABLE = "quota_unavailable"


def emit_auth_event(
    request: Request,
    *,
    outcome: AuthOutcome,
    status_code: int,
    organization_id: str | None = None,
    key_prefix: str | None = None,
) -> None:
    """Schedule one audit row; never raises."""
    if not settings.audit_enabled:
        return
    entry = ApiLog(
        organization_id=organization_id,
        key_prefix=key_prefix,
        outcome=outcome.value,
        method=request.method,
        endpoint=request.url.path,
        status_code=status_code,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    try:
        task = asyncio.get_running_loop().create_task(_write(entry))
    except RuntimeError:
        logger.warning("audit_event_dropped outcome=%s", outcome.value)
        return
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def _write(entry: ApiLog) -> None:
    try:
        async with async_session_maker() as session:
            session.add(entry)
            await session.commit()
    except Exception as exc:
        logger.warning("audit_event_write_failed outcome=%s", entry.outcome, exc_info=exc)


async def drain_audit_events() -> None:
    """Wait for scheduled audit writes to finish."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
