"""API key authentication and metering dependencies.

Tenant-scoped handlers receive the authenticated account explicitly:

    async def handler(account: AccountDep): ...          # authenticated
    async def handler(account: MeteredAccountDep): ...   # + quota check

Per request the authenticator moves from "unauthenticated" to exactly one
terminal state: rejected 401 (missing or unknown key), rejected 403 (key
disabled or subscription not in good standing), rejected 503 (directory
unreachable, fail-closed), or authenticated.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, get_args

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import APIKeyHeader
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eams.config import settings
from eams.database import get_db
from eams.engine.audit import AuthOutcome, emit_auth_event
from eams.engine.quota import UsageSnapshot, get_quota_tracker
from eams.errors import api_error, unavailable
from eams.models import SubscriptionStatus
from eams.schemas.context import AccountContext, AccountField
from eams.storage.directory import TenantDirectory
from eams.utils.keys import key_prefix

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name=settings.api_key_header, auto_error=False)

_GOOD_STANDING = {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}


def extract_api_key(header_value: str | None, authorization: str | None) -> str | None:
    """Key from the API key header, else from ``Authorization: Bearer <key>``."""
    if header_value and header_value.strip():
        return header_value.strip()
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    return None


def subscription_in_good_standing(account: AccountContext, now: datetime) -> bool:
    """Accounts without billing state are not gated."""
    if (
        account.subscription_status is not None
        and account.subscription_status not in _GOOD_STANDING
    ):
        return False
    period_end = account.subscription_period_end
    if period_end is not None:
        if period_end.tzinfo is None:
            period_end = period_end.replace(tzinfo=timezone.utc)
        if period_end < now:
            return False
    return True


def _reject(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    outcome: AuthOutcome,
    *,
    account: AccountContext | None = None,
    prefix: str | None = None,
) -> HTTPException:
    emit_auth_event(
        request,
        outcome=outcome,
        status_code=status_code,
        organization_id=account.id if account else None,
        key_prefix=prefix,
    )
    logger.warning("auth_rejected outcome=%s key_prefix=%s", outcome.value, prefix)
    headers = {"WWW-Authenticate": "ApiKey"} if status_code == 401 else None
    return api_error(status_code, code, message, headers=headers)


async def _authenticate(
    request: Request, db: AsyncSession, header_value: str | None
) -> AccountContext:
    """Resolve the presented key to an account; rejections are audited here."""
    api_key = extract_api_key(header_value, request.headers.get("authorization"))
    if not api_key:
        raise _reject(
            request,
            status.HTTP_401_UNAUTHORIZED,
            "AUTH_MISSING_CREDENTIAL",
            f"API key is required. Provide it via the {settings.api_key_header} header "
            "or an Authorization: Bearer token",
            AuthOutcome.MISSING_CREDENTIAL,
        )
    prefix = key_prefix(api_key)

    try:
        account = await asyncio.wait_for(
            TenantDirectory(db).resolve(api_key),
            timeout=settings.directory_timeout_ms / 1000.0,
        )
    except (SQLAlchemyError, asyncio.TimeoutError) as exc:
        logger.error("directory_lookup_failed key_prefix=%s", prefix, exc_info=exc)
        raise _reject(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "AUTH_UNAVAILABLE",
            "Authentication is temporarily unavailable",
            AuthOutcome.LOOKUP_FAILED,
            prefix=prefix,
        ) from exc

    if account is None:
        raise _reject(
            request,
            status.HTTP_401_UNAUTHORIZED,
            "AUTH_INVALID_CREDENTIAL",
            "Invalid API key",
            AuthOutcome.INVALID_CREDENTIAL,
            prefix=prefix,
        )
    if not account.api_key_enabled:
        raise _reject(
            request,
            status.HTTP_403_FORBIDDEN,
            "AUTH_ACCESS_DISABLED",
            "API access is disabled for this account",
            AuthOutcome.ACCESS_DISABLED,
            account=account,
            prefix=prefix,
        )
    if not subscription_in_good_standing(account, account.resolved_at or datetime.now(timezone.utc)):
        raise _reject(
            request,
            status.HTTP_403_FORBIDDEN,
            "SUBSCRIPTION_INACTIVE",
            "Enterprise subscription is not active. Please update your billing information.",
            AuthOutcome.SUBSCRIPTION_INACTIVE,
            account=account,
            prefix=prefix,
        )
    logger.debug("auth_ok tenant_id=%s", account.tenant_id)
    return account


def _audit(
    request: Request, account: AccountContext, outcome: AuthOutcome, status_code: int
) -> None:
    emit_auth_event(
        request,
        outcome=outcome,
        status_code=status_code,
        organization_id=account.id,
        key_prefix=account.api_key_prefix,
    )


async def get_account_context(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    header_value: str | None = Depends(API_KEY_HEADER),
) -> AccountContext:
    """Request authenticator for routes that are not metered."""
    account = await _authenticate(request, db, header_value)
    _audit(request, account, AuthOutcome.AUTHENTICATED, status.HTTP_200_OK)
    return account


AccountDep = Annotated[AccountContext, Depends(get_account_context)]


def _format_quota(value: int | None) -> str:
    return "unlimited" if value is None else str(value)


def quota_headers(usage: UsageSnapshot) -> dict[str, str]:
    return {
        "X-Quota-Limit": _format_quota(usage.quota),
        "X-Quota-Used": str(usage.used),
        "X-Quota-Remaining": _format_quota(usage.remaining),
    }


def quota_exceeded(usage: UsageSnapshot, now: datetime) -> HTTPException:
    """429 carrying current usage and the reset time."""
    retry_after = max(int((usage.period_end - now).total_seconds()), 0)
    return api_error(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "QUOTA_EXCEEDED",
        "Monthly request quota exceeded",
        used=usage.used,
        quota=usage.quota,
        reset_at=usage.period_end.isoformat(),
        headers={"Retry-After": str(retry_after), **quota_headers(usage)},
    )


async def get_metered_account_context(
    request: Request,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
    header_value: str | None = Depends(API_KEY_HEADER),
) -> AccountContext:
    """Authenticate, then count the request against the monthly quota.

    Runs to completion before the handler starts, so the authorization
    decision and the increment form one unit. Exactly one audit event is
    written, carrying the final outcome.
    """
    account = await _authenticate(request, db, header_value)
    now = account.resolved_at or datetime.now(timezone.utc)
    try:
        decision = await get_quota_tracker().check_and_increment(
            account.id, account.monthly_quota, at=now
        )
    except (SQLAlchemyError, asyncio.TimeoutError) as exc:
        logger.error("quota_increment_failed account_id=%s", account.id, exc_info=exc)
        _audit(
            request, account, AuthOutcome.QUOTA_UNAVAILABLE, status.HTTP_503_SERVICE_UNAVAILABLE
        )
        raise unavailable(
            "QUOTA_UNAVAILABLE", "Usage metering is temporarily unavailable"
        ) from exc

    if not decision.allowed:
        _audit(request, account, AuthOutcome.QUOTA_EXCEEDED, status.HTTP_429_TOO_MANY_REQUESTS)
        raise quota_exceeded(decision.usage, now)

    _audit(request, account, AuthOutcome.AUTHENTICATED, status.HTTP_200_OK)
    for key, value in quota_headers(decision.usage).items():
        response.headers[key] = value
    return account


MeteredAccountDep = Annotated[AccountContext, Depends(get_metered_account_context)]


def account_field(name: AccountField, *, metered: bool = False) -> Callable[[AccountContext], Any]:
    """Dependency yielding one field of the authenticated account.

    Pass ``metered=True`` on metered routes so the account is resolved
    once, through the same dependency the handler uses. Unknown names
    fail when the route is declared, not per request.
    """
    if name not in get_args(AccountField):
        raise ValueError(f"Unknown account field: {name}")

    if metered:

        def dependency(account: MeteredAccountDep) -> Any:
            return getattr(account, name)

    else:

        def dependency(account: AccountDep) -> Any:
            return getattr(account, name)

    dependency.__name__ = f"account_{name}"
    return dependency
