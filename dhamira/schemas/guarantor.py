from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dhamira.schemas.common import GuarantorStatus


class GuarantorCreateRequest(BaseModel):
    loan_id: UUID
    client_id: UUID | None = None
    name: str | None = Field(default=None, max_length=255)
    national_id: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=50)
    relationship: str | None = Field(default=None, max_length=100)
    id_copy_url: str = Field(min_length=1, max_length=1024)
    photo_url: str = Field(min_length=1, max_length=1024)


class GuarantorDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    loan_id: UUID
    client_id: UUID | None = None
    name: str
    national_id: str
    phone: str | None = None
    relationship: str | None = None
    is_member: bool = False
    id_copy_url: str | None = None
    photo_url: str | None = None
    status: GuarantorStatus
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None


class GuarantorListResponse(BaseModel):
    items: list[GuarantorDTO]
    total: int
    accepted: int
