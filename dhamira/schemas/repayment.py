from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from dhamira.schemas.common import RepaymentMethod


class RepaymentCreateRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    amount_cents: int = Field(gt=0)
    method: RepaymentMethod = RepaymentMethod.CASH
    reference: str | None = Field(default=None, max_length=100)
    paid_at: datetime | None = None


class RepaymentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    loan_id: UUID
    amount_cents: int
    method: RepaymentMethod
    reference: str | None = None
    paid_at: datetime | None = None
    recorded_by_id: UUID | None = None
    created_at: datetime | None = None


class RepaymentListResponse(BaseModel):
    items: list[RepaymentDTO]
    total: int
    total_paid_cents: int
    outstanding_cents: int
