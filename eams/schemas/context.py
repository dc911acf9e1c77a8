"""Authenticated account context passed into tenant-scoped handlers."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from eams.models import SubscriptionPlan, SubscriptionStatus


class AccountContext(BaseModel):
    """Snapshot of the account a request authenticated as."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    tenant_id: str
    user_id: str
    subscription_plan: SubscriptionPlan
    monthly_quota: int | None = None
    api_key_enabled: bool
    api_key_prefix: str
    subscription_status: SubscriptionStatus | None = None
    subscription_period_end: datetime | None = None
    # Assigns the request to a quota period.
    resolved_at: datetime | None = None


AccountField = Literal[
    "id",
    "name",
    "tenant_id",
    "user_id",
    "subscription_plan",
    "monthly_quota",
    "api_key_prefix",
]
