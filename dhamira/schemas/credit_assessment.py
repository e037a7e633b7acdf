from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CreditAssessmentCreateRequest(BaseModel):
    loan_id: UUID
    character: int = Field(ge=1, le=5)
    capacity: int = Field(ge=1, le=5)
    capital: int = Field(ge=1, le=5)
    collateral: int = Field(ge=1, le=5)
    conditions: int = Field(ge=1, le=5)
    officer_notes: str | None = Field(default=None, max_length=4000)


class CreditAssessmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_id: UUID
    officer_id: UUID | None = None
    character: int
    capacity: int
    capital: int
    collateral: int
    conditions: int
    total_score: int
    passed: bool
    officer_notes: str | None = None
    created_at: datetime | None = None


class CreditAssessmentListResponse(BaseModel):
    items: list[CreditAssessmentDTO]
    total: int
