"""Branch management endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eams.auth.middleware import MeteredAccountDep, account_field
from eams.database import get_db
from eams.errors import bad_request, conflict, is_unique_violation, not_found
from eams.models import BRANCH_LIMITS, EnterpriseAccount
from eams.schemas.branch import BranchResponse, CreateBranchRequest, UpdateBranchRequest
from eams.storage.repositories import (
    apply_changes,
    count_branches,
    create_branch,
    get_branch,
    get_branch_by_code,
    list_branches,
)

logger = logging.getLogger(__name__)

_BRANCH_CODE_MARKERS = ("uq_branches_organization_code", "branches.code")

router = APIRouter()

DbDep = Annotated[AsyncSession, Depends(get_db)]
CallerTenantId = Annotated[str, Depends(account_field("tenant_id", metered=True))]


@router.post(
    "/{account_id}/branches",
    status_code=status.HTTP_201_CREATED,
    response_model=BranchResponse,
)
async def create_branch_for_account(
    account_id: str,
    body: CreateBranchRequest,
    caller: MeteredAccountDep,
    caller_tenant_id: CallerTenantId,
    db: DbDep,
):
    """Create a branch; rejected once the plan's branch limit is reached."""
    # Row lock serializes concurrent creates against the limit (no-op on SQLite).
    result = await db.execute(
        select(EnterpriseAccount).where(EnterpriseAccount.id == account_id).with_for_update()
    )
    account = result.scalar_one_or_none()
    if not account:
        raise not_found("Enterprise account not found")

    limit = BRANCH_LIMITS[account.subscription_plan]
    if limit is not None and await count_branches(db, account.id) >= limit:
        raise bad_request(
            "BRANCH_LIMIT_REACHED",
            f"Branch limit reached for {account.subscription_plan.value} plan ({limit} branches)",
        )

    if body.code and await get_branch_by_code(db, account.id, body.code):
        raise conflict("Branch with this code already exists")

    try:
        branch = await create_branch(db, account.id, body.model_dump())
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if is_unique_violation(exc, *_BRANCH_CODE_MARKERS):
            raise conflict("Branch with this code already exists") from exc
        raise
    logger.info(
        "branch_created account_id=%s branch_id=%s by_tenant=%s",
        account.id,
        branch.id,
        caller_tenant_id,
    )
    return branch


@router.get("/{account_id}/branches", response_model=list[BranchResponse])
async def get_branches(
    account_id: str,
    caller: MeteredAccountDep,
    db: DbDep,
    active_only: Annotated[bool, Query()] = True,
):
    """Branches of an account; 404 when the account itself is gone."""
    if not await db.get(EnterpriseAccount, account_id):
        raise not_found("Enterprise account not found")
    return await list_branches(db, account_id, active_only=active_only)


@router.get("/branches/{branch_id}", response_model=BranchResponse)
async def get_branch_by_id(branch_id: str, caller: MeteredAccountDep, db: DbDep):
    branch = await get_branch(db, branch_id)
    if not branch:
        raise not_found("Branch not found")
    return branch


@router.patch("/branches/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: str,
    body: UpdateBranchRequest,
    caller: MeteredAccountDep,
    db: DbDep,
):
    branch = await get_branch(db, branch_id)
    if not branch:
        raise not_found("Branch not found")
    changes = body.model_dump(exclude_unset=True)
    new_code = changes.get("code")
    if new_code and new_code != branch.code:
        if await get_branch_by_code(db, branch.organization_id, new_code):
            raise conflict("Branch with this code already exists")
    apply_changes(branch, changes)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if is_unique_violation(exc, *_BRANCH_CODE_MARKERS):
            raise conflict("Branch with this code already exists") from exc
        raise
    await db.refresh(branch)
    return branch


@router.post("/branches/{branch_id}/deactivate", response_model=BranchResponse)
async def deactivate_branch(branch_id: str, caller: MeteredAccountDep, db: DbDep):
    """Soft-delete: keep the row for history, hide it from active listings."""
    branch = await get_branch(db, branch_id)
    if not branch:
        raise not_found("Branch not found")
    apply_changes(branch, {"is_active": False})
    await db.commit()
    await db.refresh(branch)
    return branch


@router.delete("/branches/{branch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_branch(branch_id: str, caller: MeteredAccountDep, db: DbDep):
    branch = await get_branch(db, branch_id)
    if not branch:
        raise not_found("Branch not found")
    await db.delete(branch)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
