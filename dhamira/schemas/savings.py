from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SavingsAdjustRequest(BaseModel):
    """Signed adjustment; negative amounts deduct from the balance."""

    client_id: UUID
    amount_cents: int
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("amount_cents")
    @classmethod
    def _non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("amount_cents must not be zero")
        return value


class SavingsDepositRequest(BaseModel):
    amount_cents: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=2000)


class SavingsTransactionDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    group_id: UUID | None = None
    amount_cents: int
    balance_after_cents: int
    source: str
    notes: str | None = None
    recorded_by_id: UUID | None = None
    created_at: datetime | None = None


class SavingsListResponse(BaseModel):
    items: list[SavingsTransactionDTO]
    total: int
