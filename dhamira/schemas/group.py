from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dhamira.schemas.common import RecordStatus


class GroupCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    branch_id: UUID | None = None
    loan_officer_id: UUID | None = None
    meeting_day: str | None = Field(default=None, max_length=20)
    meeting_time: str | None = Field(default=None, max_length=20)
    chairperson_id: UUID | None = None
    secretary_id: UUID | None = None
    treasurer_id: UUID | None = None


class GroupUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    meeting_day: str | None = Field(default=None, max_length=20)
    meeting_time: str | None = Field(default=None, max_length=20)
    loan_officer_id: UUID | None = None
    chairperson_id: UUID | None = None
    secretary_id: UUID | None = None
    treasurer_id: UUID | None = None


class GroupDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    name: str
    branch_id: UUID | None = None
    loan_officer_id: UUID | None = None
    meeting_day: str | None = None
    meeting_time: str | None = None
    status: RecordStatus
    chairperson_id: UUID | None = None
    secretary_id: UUID | None = None
    treasurer_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GroupListResponse(BaseModel):
    items: list[GroupDTO]
    total: int
