"""Branch API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateBranchRequest(BaseModel):
    """POST /enterprise/{id}/branches request."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2)
    code: str | None = Field(default=None, min_length=2, max_length=10)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(default=None, max_length=20)
    country: str = Field(default="US", min_length=2, max_length=2)
    settings: dict[str, Any] | None = None


class UpdateBranchRequest(BaseModel):
    """PATCH /enterprise/branches/{branch_id} request."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2)
    code: str | None = Field(default=None, min_length=2, max_length=10)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, min_length=2, max_length=2)
    settings: dict[str, Any] | None = None
    is_active: bool | None = None

    @field_validator("name", "country", "is_active")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


class BranchResponse(BaseModel):
    """Branch as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    code: str | None = None
    email: str | None = None
    phone: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str
    settings: dict[str, Any] | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
