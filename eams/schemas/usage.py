"""Quota and API log schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from eams.schemas.account import Pagination


class QuotaUsageResponse(BaseModel):
    """GET /enterprise/{id}/quota response."""

    tenant_id: str
    used: int
    quota: int | None
    remaining: int | None
    period_start: datetime
    period_end: datetime


class ApiLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    key_prefix: str | None = None
    outcome: str
    method: str
    endpoint: str
    status_code: int
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime


class ApiLogListResponse(BaseModel):
    data: list[ApiLogResponse]
    pagination: Pagination
