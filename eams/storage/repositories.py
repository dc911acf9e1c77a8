"""Repository functions for accounts, branches and API logs."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eams.models import ApiLog, Branch, EnterpriseAccount
from eams.utils.keys import generate_api_key, generate_tenant_id, hash_api_key, key_prefix


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def create_account(
    db: AsyncSession, fields: dict[str, Any]
) -> tuple[EnterpriseAccount, str]:
    """Create account with a fresh tenant id and key. Returns (account, raw_key)."""
    api_key = generate_api_key()
    account = EnterpriseAccount(
        tenant_id=generate_tenant_id(),
        api_key_hash=hash_api_key(api_key),
        api_key_prefix=key_prefix(api_key),
        **fields,
    )
    db.add(account)
    await db.flush()
    return account, api_key


async def list_accounts(
    db: AsyncSession, page: int, limit: int
) -> tuple[list[EnterpriseAccount], int]:
    """Newest first, with the total count for pagination."""
    total = await db.scalar(select(func.count()).select_from(EnterpriseAccount))
    result = await db.execute(
        select(EnterpriseAccount)
        .order_by(EnterpriseAccount.created_at.desc(), EnterpriseAccount.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)


async def delete_account(db: AsyncSession, account_id: str) -> bool:
    """Delete account; branches, usage and logs go with it via ON DELETE CASCADE."""
    result = await db.execute(
        delete(EnterpriseAccount)
        .where(EnterpriseAccount.id == account_id)
        .returning(EnterpriseAccount.id)
    )
    return result.first() is not None


async def count_branches(db: AsyncSession, organization_id: str) -> int:
    """All branches, active or not, count toward the plan limit."""
    total = await db.scalar(
        select(func.count()).select_from(Branch).where(Branch.organization_id == organization_id)
    )
    return int(total or 0)


async def get_branch_by_code(
    db: AsyncSession, organization_id: str, code: str
) -> Branch | None:
    result = await db.execute(
        select(Branch).where(
            Branch.organization_id == organization_id,
            Branch.code == code,
        )
    )
    return result.scalar_one_or_none()


async def get_branch(db: AsyncSession, branch_id: str) -> Branch | None:
    result = await db.execute(select(Branch).where(Branch.id == branch_id))
    return result.scalar_one_or_none()


async def list_branches(
    db: AsyncSession, organization_id: str, active_only: bool = True
) -> list[Branch]:
    stmt = select(Branch).where(Branch.organization_id == organization_id)
    if active_only:
        stmt = stmt.where(Branch.is_active.is_(True))
    result = await db.execute(stmt.order_by(Branch.name))
    return list(result.scalars().all())


async def create_branch(db: AsyncSession, organization_id: str, fields: dict[str, Any]) -> Branch:
    branch = Branch(organization_id=organization_id, **fields)
    db.add(branch)
    await db.flush()
    return branch


async def list_api_logs(
    db: AsyncSession, organization_id: str, page: int, limit: int
) -> tuple[list[ApiLog], int]:
    """Audit trail for one account, newest first."""
    total = await db.scalar(
        select(func.count()).select_from(ApiLog).where(ApiLog.organization_id == organization_id)
    )
    result = await db.execute(
        select(ApiLog)
        .where(ApiLog.organization_id == organization_id)
        .order_by(ApiLog.timestamp.desc(), ApiLog.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)


def apply_changes(obj: Any, changes: dict[str, Any]) -> None:
    """Copy a PATCH payload onto an ORM object."""
    for key, value in changes.items():
        setattr(obj, key, value)
    obj.updated_at = _now()
