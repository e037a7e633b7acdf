from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dhamira.schemas.common import RecordStatus


class ClientCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    national_id: str = Field(min_length=1, max_length=50)
    phone: str | None = Field(default=None, max_length=50)
    residence: str | None = Field(default=None, max_length=255)
    business_type: str | None = Field(default=None, max_length=255)
    branch_id: UUID | None = None
    group_id: UUID | None = None
    loan_officer_id: UUID | None = None


class ClientUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    residence: str | None = Field(default=None, max_length=255)
    business_type: str | None = Field(default=None, max_length=255)
    branch_id: UUID | None = None
    group_id: UUID | None = None
    loan_officer_id: UUID | None = None


class ClientDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    name: str
    national_id: str
    phone: str | None = None
    residence: str | None = None
    business_type: str | None = None
    branch_id: UUID | None = None
    group_id: UUID | None = None
    loan_officer_id: UUID | None = None
    status: RecordStatus
    savings_balance_cents: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClientListResponse(BaseModel):
    items: list[ClientDTO]
    total: int
