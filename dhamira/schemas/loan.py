from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dhamira.schemas.common import LoanProduct, LoanStatus, LoanType
from dhamira.schemas.credit_assessment import CreditAssessmentDTO
from dhamira.schemas.guarantor import GuarantorDTO
from dhamira.schemas.repayment import RepaymentDTO


class GuarantorInput(BaseModel):
    name: str = Field(default="", max_length=255)
    national_id: str = Field(default="", max_length=50)
    phone: str | None = Field(default=None, max_length=50)
    relationship: str | None = Field(default=None, max_length=100)
    client_id: UUID | None = None
    id_copy_url: str | None = Field(default=None, max_length=1024)
    photo_url: str | None = Field(default=None, max_length=1024)


class LoanInitiateRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    client_id: UUID | None = None
    client_national_id: str | None = Field(default=None, max_length=50)
    group_id: UUID | None = None
    product: LoanProduct = LoanProduct.BUSINESS
    principal_cents: int = Field(gt=0)
    term_months: int = Field(ge=1, le=60)
    purpose: str | None = Field(default=None, max_length=2000)
    guarantors: list[GuarantorInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_borrower(self) -> "LoanInitiateRequest":
        if not (self.client_id or self.client_national_id):
            raise ValueError("client_id or client_national_id is required")
        return self

    @property
    def loan_type(self) -> str:
        return LoanType.GROUP.value if self.group_id else LoanType.INDIVIDUAL.value


class LoanApprovalDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID | None = None
    decision: str
    notes: str | None = None
    created_at: datetime | None = None


class LoanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    client_id: UUID
    group_id: UUID | None = None
    loan_type: LoanType
    product: LoanProduct
    principal_cents: int
    interest_cents: int
    total_due_cents: int
    total_paid_cents: int
    outstanding_cents: int
    term_months: int
    cycle: int
    purpose: str | None = None
    status: LoanStatus
    application_fee_paid: bool
    initiated_by_id: UUID
    disbursed_by_id: UUID | None = None
    disbursed_at: datetime | None = None
    disbursement_reference: str | None = None
    due_date: date | None = None
    closed_at: datetime | None = None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FeeBreakdown(BaseModel):
    principal_cents: int
    interest_cents: int
    total_due_cents: int
    interest_percent: int


class LoanInitiateResponse(BaseModel):
    loan: LoanDTO
    guarantors: list[GuarantorDTO]
    fees: FeeBreakdown


class LoanTransitionRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class LoanDetailResponse(BaseModel):
    loan: LoanDTO
    approvals: list[LoanApprovalDTO] = Field(default_factory=list)
    guarantors: list[GuarantorDTO] = Field(default_factory=list)
    accepted_guarantors: int = 0
    assessment: CreditAssessmentDTO | None = None
    repayments: list[RepaymentDTO] = Field(default_factory=list)
    progress_percent: float = 0.0
    actions: list[str] = Field(default_factory=list)


class LoanListResponse(BaseModel):
    items: list[LoanDTO]
    total: int
    page: int
    page_size: int
    total_pages: int


class LoanAggregate(BaseModel):
    key: str
    count: int
    total_principal_cents: int
    total_due_cents: int = 0
    total_paid_cents: int = 0
    total_outstanding_cents: int = 0


class LoanStatistics(BaseModel):
    overall: dict[str, Any]
    by_status: list[LoanAggregate]
    by_product: list[LoanAggregate]


class LoanHistoryResponse(LoanListResponse):
    statistics: LoanStatistics


class BulkFeePaidRequest(BaseModel):
    loan_ids: list[UUID] = Field(min_length=1, max_length=500)


class BulkFeePaidResponse(BaseModel):
    updated: list[UUID]
    skipped: dict[str, str]
