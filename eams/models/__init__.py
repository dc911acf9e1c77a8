"""Database models."""

from eams.models.account import (
    BRANCH_LIMITS,
    EnterpriseAccount,
    SubscriptionPlan,
    SubscriptionStatus,
)
from eams.models.branch import Branch
from eams.models.usage import ApiLog, ApiUsageRecord

__all__ = [
    "BRANCH_LIMITS",
    "EnterpriseAccount",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "Branch",
    "ApiLog",
    "ApiUsageRecord",
]
