"""Usage counter and API log models."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from eams.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiUsageRecord(Base):
    """Monthly request counter - one row per account per calendar month."""

    __tablename__ = "api_usage_records"
    __table_args__ = (
        UniqueConstraint("account_id", "period_start", name="uq_api_usage_account_period"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("enterprise_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ApiLog(Base):
    """Authentication audit trail - one row per resolution attempt."""

    __tablename__ = "api_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    # NULL when the presented key matched no account.
    organization_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("enterprise_accounts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    key_prefix: Mapped[str | None] = mapped_column(String(16), nullable=True)
    outcome: Mapped[str] = mapped_column(String(40), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
