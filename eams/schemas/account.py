"""Enterprise account API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eams.models import SubscriptionPlan, SubscriptionStatus
from eams.schemas.branch import BranchResponse

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CreateEnterpriseAccountRequest(BaseModel):
    """POST /enterprise request."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=2)
    subscription_plan: SubscriptionPlan = SubscriptionPlan.STARTUP
    billing_email: str | None = Field(default=None, max_length=255, pattern=_EMAIL_PATTERN)
    contract_start: datetime | None = None
    contract_end: datetime | None = None
    monthly_quota: int | None = Field(default=None, ge=0)
    api_key_enabled: bool = True


class UpdateEnterpriseAccountRequest(BaseModel):
    """PATCH /enterprise/{id} request. tenant_id and user_id are immutable."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2)
    subscription_plan: SubscriptionPlan | None = None
    billing_email: str | None = Field(default=None, max_length=255, pattern=_EMAIL_PATTERN)
    contract_start: datetime | None = None
    contract_end: datetime | None = None
    monthly_quota: int | None = Field(default=None, ge=0)
    subscription_status: SubscriptionStatus | None = None
    subscription_period_end: datetime | None = None

    @field_validator("name", "subscription_plan")
    @classmethod
    def _not_null(cls, value):
        # May be omitted, but the columns are NOT NULL
        if value is None:
            raise ValueError("must not be null")
        return value


class ToggleApiKeyRequest(BaseModel):
    """PATCH /enterprise/{id}/api-key/toggle request."""

    enabled: bool


class ValidateApiKeyRequest(BaseModel):
    """POST /enterprise/validate-api-key request."""

    api_key: str = Field(min_length=1)


class AccountResponse(BaseModel):
    """Enterprise account as returned by the API (never the raw key)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    user_id: str
    name: str
    subscription_plan: SubscriptionPlan
    billing_email: str | None = None
    contract_start: datetime | None = None
    contract_end: datetime | None = None
    api_key_prefix: str
    api_key_enabled: bool
    monthly_quota: int | None = None
    subscription_status: SubscriptionStatus | None = None
    subscription_period_end: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AccountDetailResponse(AccountResponse):
    """Account with its active branches."""

    branches: list[BranchResponse] = []


class CreatedAccountResponse(AccountResponse):
    """Create response - the only place besides rotation the raw key appears."""

    api_key: str


class ApiKeyResponse(BaseModel):
    """Regenerated key."""

    id: str
    api_key: str
    api_key_prefix: str
    api_key_enabled: bool


class ApiKeyStatusResponse(BaseModel):
    """Key state after an enable/disable toggle."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    api_key_prefix: str
    api_key_enabled: bool


class ValidateApiKeyResponse(BaseModel):
    """Self-check result for integrators."""

    valid: bool
    tenant_id: str | None = None
    organization_id: str | None = None
    name: str | None = None
    subscription_plan: SubscriptionPlan | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AccountListResponse(BaseModel):
    data: list[AccountResponse]
    pagination: Pagination
