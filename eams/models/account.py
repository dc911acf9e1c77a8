"""Enterprise account model."""

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from eams.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionPlan(str, enum.Enum):
    """Billing plan; drives the branch limit."""

    STARTUP = "STARTUP"
    GROWTH = "GROWTH"
    ENTERPRISE = "ENTERPRISE"
    CUSTOM = "CUSTOM"


class SubscriptionStatus(str, enum.Enum):
    """Billing provider subscription state, mirrored read-only."""

    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    UNPAID = "UNPAID"


# None = unlimited
BRANCH_LIMITS: dict[SubscriptionPlan, int | None] = {
    SubscriptionPlan.STARTUP: 5,
    SubscriptionPlan.GROWTH: 20,
    SubscriptionPlan.ENTERPRISE: None,
    SubscriptionPlan.CUSTOM: None,
}


class EnterpriseAccount(Base):
    """Enterprise account table - one per owning user, one API key each."""

    __tablename__ = "enterprise_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subscription_plan: Mapped[SubscriptionPlan] = mapped_column(
        Enum(SubscriptionPlan, native_enum=False, length=20),
        nullable=False,
        default=SubscriptionPlan.STARTUP,
    )
    billing_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contract_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    contract_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Only the salted digest is stored; the raw key is shown once at issue time.
    api_key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    api_key_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    api_key_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    monthly_quota: Mapped[int | None] = mapped_column(Integer, nullable=True)

    subscription_status: Mapped[SubscriptionStatus | None] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=20), nullable=True
    )
    subscription_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
