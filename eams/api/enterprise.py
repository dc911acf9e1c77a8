"""Enterprise account endpoints - accounts, API keys, key validation."""

import logging
import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eams.auth.middleware import AccountDep, MeteredAccountDep
from eams.database import get_db
from eams.errors import conflict, is_unique_violation, not_found
from eams.schemas.account import (
    AccountDetailResponse,
    AccountListResponse,
    AccountResponse,
    ApiKeyResponse,
    ApiKeyStatusResponse,
    CreateEnterpriseAccountRequest,
    CreatedAccountResponse,
    Pagination,
    ToggleApiKeyRequest,
    UpdateEnterpriseAccountRequest,
    ValidateApiKeyRequest,
    ValidateApiKeyResponse,
)
from eams.schemas.branch import BranchResponse
from eams.storage.directory import TenantDirectory, invalidate_account
from eams.storage.repositories import (
    apply_changes,
    create_account,
    delete_account,
    list_accounts,
    list_branches,
)

logger = logging.getLogger(__name__)

_USER_ID_MARKERS = ("enterprise_accounts_user_id_key", "enterprise_accounts.user_id")

router = APIRouter()

DbDep = Annotated[AsyncSession, Depends(get_db)]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CreatedAccountResponse)
async def create_enterprise_account(body: CreateEnterpriseAccountRequest, db: DbDep):
    """Create a new enterprise account. Public - this is how a tenant gets its first key."""
    directory = TenantDirectory(db)
    if await directory.resolve_by_user_id(body.user_id):
        raise conflict("User already has an enterprise account")
    try:
        account, api_key = await create_account(db, body.model_dump())
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if is_unique_violation(exc, *_USER_ID_MARKERS):
            raise conflict("User already has an enterprise account") from exc
        raise
    logger.info("account_created tenant_id=%s plan=%s", account.tenant_id, account.subscription_plan.value)
    return CreatedAccountResponse(
        **AccountResponse.model_validate(account).model_dump(), api_key=api_key
    )


@router.get("", response_model=AccountListResponse)
async def list_enterprise_accounts(
    caller: MeteredAccountDep,
    db: DbDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """List enterprise accounts, newest first."""
    accounts, total = await list_accounts(db, page, limit)
    return AccountListResponse(
        data=[AccountResponse.model_validate(a) for a in accounts],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
        ),
    )


@router.post(
    "/validate-api-key", response_model=ValidateApiKeyResponse, response_model_exclude_none=True
)
async def validate_api_key(body: ValidateApiKeyRequest, db: DbDep):
    """Self-check for integrators. Public; unknown and disabled keys are both just invalid."""
    account = await TenantDirectory(db).resolve(body.api_key)
    if account is None or not account.api_key_enabled:
        return ValidateApiKeyResponse(valid=False)
    return ValidateApiKeyResponse(
        valid=True,
        tenant_id=account.tenant_id,
        organization_id=account.id,
        name=account.name,
        subscription_plan=account.subscription_plan,
    )


@router.get("/by-user/{user_id}", response_model=AccountResponse)
async def get_account_by_user(user_id: str, caller: MeteredAccountDep, db: DbDep):
    account = await TenantDirectory(db).resolve_by_user_id(user_id)
    if not account:
        raise not_found("Enterprise account not found for this user")
    return account


@router.get("/by-tenant/{tenant_id}", response_model=AccountResponse)
async def get_account_by_tenant(tenant_id: str, caller: MeteredAccountDep, db: DbDep):
    account = await TenantDirectory(db).resolve_by_tenant_id(tenant_id)
    if not account:
        raise not_found("Enterprise account not found for this tenant")
    return account


@router.get("/{account_id}", response_model=AccountDetailResponse)
async def get_account(account_id: str, caller: MeteredAccountDep, db: DbDep):
    """Get account with its active branches."""
    account = await TenantDirectory(db).resolve_by_id(account_id)
    if not account:
        raise not_found("Enterprise account not found")
    branches = await list_branches(db, account.id, active_only=True)
    return AccountDetailResponse(
        **AccountResponse.model_validate(account).model_dump(),
        branches=[BranchResponse.model_validate(b) for b in branches],
    )


@router.patch("/{account_id}", response_model=AccountResponse)
async def update_account(
    account_id: str,
    body: UpdateEnterpriseAccountRequest,
    caller: MeteredAccountDep,
    db: DbDep,
):
    account = await TenantDirectory(db).resolve_by_id(account_id)
    if not account:
        raise not_found("Enterprise account not found")
    apply_changes(account, body.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(account)
    await invalidate_account(account_id)
    return account


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_account(account_id: str, caller: MeteredAccountDep, db: DbDep):
    """Delete account with its branches, usage counters and logs."""
    if not await delete_account(db, account_id):
        raise not_found("Enterprise account not found")
    await db.commit()
    await invalidate_account(account_id)
    logger.info("account_deleted account_id=%s by_tenant=%s", account_id, caller.tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{account_id}/api-key/regenerate", response_model=ApiKeyResponse)
async def regenerate_api_key(account_id: str, caller: AccountDep, db: DbDep):
    """Rotate the key. The previous key is rejected from the next request on."""
    directory = TenantDirectory(db)
    new_key = await directory.regenerate_key(account_id)
    if new_key is None:
        raise not_found("Enterprise account not found")
    account = await directory.resolve_by_id(account_id)
    return ApiKeyResponse(
        id=account.id,
        api_key=new_key,
        api_key_prefix=account.api_key_prefix,
        api_key_enabled=account.api_key_enabled,
    )


@router.patch("/{account_id}/api-key/toggle", response_model=ApiKeyStatusResponse)
async def toggle_api_access(
    account_id: str, body: ToggleApiKeyRequest, caller: AccountDep, db: DbDep
):
    """Enable or disable API access without changing the key."""
    account = await TenantDirectory(db).set_enabled(account_id, body.enabled)
    if account is None:
        raise not_found("Enterprise account not found")
    return account
