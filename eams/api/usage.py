"""Quota and API log endpoints."""

import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eams.auth.middleware import AccountDep, MeteredAccountDep
from eams.database import get_db
from eams.engine.quota import get_quota_tracker
from eams.errors import not_found
from eams.schemas.account import Pagination
from eams.schemas.usage import ApiLogListResponse, ApiLogResponse, QuotaUsageResponse
from eams.storage.directory import TenantDirectory
from eams.storage.repositories import list_api_logs

router = APIRouter()

DbDep = Annotated[AsyncSession, Depends(get_db)]


@router.get("/{account_id}/quota", response_model=QuotaUsageResponse)
async def get_quota(account_id: str, caller: AccountDep, db: DbDep):
    """Current month usage vs. allotment. Not metered, so reading it changes nothing."""
    account = await TenantDirectory(db).resolve_by_id(account_id)
    if not account:
        raise not_found("Enterprise account not found")
    usage = await get_quota_tracker().get_usage(db, account.id, account.monthly_quota)
    return QuotaUsageResponse(
        tenant_id=account.tenant_id,
        used=usage.used,
        quota=usage.quota,
        remaining=usage.remaining,
        period_start=usage.period_start,
        period_end=usage.period_end,
    )


@router.get("/{account_id}/api-logs", response_model=ApiLogListResponse)
async def get_api_logs(
    account_id: str,
    caller: MeteredAccountDep,
    db: DbDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
):
    """Authentication audit trail for an account, newest first."""
    account = await TenantDirectory(db).resolve_by_id(account_id)
    if not account:
        raise not_found("Enterprise account not found")
    logs, total = await list_api_logs(db, account.id, page, limit)
    return ApiLogListResponse(
        data=[ApiLogResponse.model_validate(log) for log in logs],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
        ),
    )
