from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from dhamira.core.permissions import Role

AdminRole = Literal["super_admin", "initiator_admin", "approver_admin"]


class UserCreateBase(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr | None = None
    full_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    password: str = Field(min_length=8, max_length=128)
    branch_id: UUID | None = None


class AdminCreateRequest(UserCreateBase):
    role: AdminRole


class LoanOfficerCreateRequest(UserCreateBase):
    pass


class UserDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    username: str
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    role: Role
    branch_id: UUID | None = None
    is_active: bool
    last_active_at: datetime | None = None
    created_at: datetime | None = None


class UserListResponse(BaseModel):
    items: list[UserDTO]
    total: int


class SessionResponse(BaseModel):
    user: UserDTO
    allowed_actions: list[str]
