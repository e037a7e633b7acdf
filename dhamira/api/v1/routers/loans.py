from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core import permissions
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.user import User
from dhamira.schemas.common import LoanProduct, LoanStatus, LoanType
from dhamira.schemas.loan import (
    BulkFeePaidRequest,
    BulkFeePaidResponse,
    LoanDetailResponse,
    LoanDTO,
    LoanHistoryResponse,
    LoanInitiateRequest,
    LoanInitiateResponse,
    LoanListResponse,
    LoanTransitionRequest,
)
from dhamira.schemas.repayment import RepaymentCreateRequest, RepaymentListResponse
from dhamira.services import loans as loan_service
from dhamira.services import repayments as repayment_service
from dhamira.services.loan_workflow import WorkflowAction
from dhamira.services.payments import PaymentRail, get_payment_rail

router = APIRouter(prefix="/loans", tags=["loans"])


def _filters(
    status: LoanStatus | None = Query(default=None),
    product: LoanProduct | None = Query(default=None),
    loan_type: LoanType | None = Query(default=None),
    client_id: UUID | None = Query(default=None),
    group_id: UUID | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
) -> loan_service.LoanFilters:
    return loan_service.LoanFilters(
        status=status.value if status else None,
        product=product.value if product else None,
        loan_type=loan_type.value if loan_type else None,
        client_id=client_id,
        group_id=group_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/initiate", response_model=LoanInitiateResponse, status_code=201, summary="Initiate a loan")
async def initiate_loan(
    payload: LoanInitiateRequest,
    current_user: User = Depends(deps.require_action(Action.LOAN_INITIATE)),
    db: AsyncSession = Depends(get_db),
) -> LoanInitiateResponse:
    loan, guarantors = await loan_service.initiate_loan(db, payload, current_user)
    return LoanInitiateResponse(
        loan=LoanDTO.model_validate(loan),
        guarantors=guarantors,
        fees=loan_service.fee_breakdown(loan.principal_cents),
    )


@router.get("", response_model=LoanListResponse, summary="List loans")
async def list_loans(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    filters: loan_service.LoanFilters = Depends(_filters),
    current_user: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> LoanListResponse:
    if not permissions.is_allowed(current_user.role, Action.LOAN_VIEW_ALL):
        filters.initiated_by_id = current_user.id
    return LoanListResponse(**await loan_service.list_loans(db, filters, page=page, page_size=page_size))


@router.get("/history", response_model=LoanHistoryResponse, summary="Loan history with statistics")
async def loan_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    filters: loan_service.LoanFilters = Depends(_filters),
    _: User = Depends(deps.require_action(Action.LOAN_VIEW_HISTORY)),
    db: AsyncSession = Depends(get_db),
) -> LoanHistoryResponse:
    return LoanHistoryResponse(**await loan_service.loan_history(db, filters, page=page, page_size=page_size))


@router.get("/my-loans", response_model=LoanHistoryResponse, summary="Loans initiated by the current officer")
async def my_loans(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    filters: loan_service.LoanFilters = Depends(_filters),
    current_user: User = Depends(deps.require_action(Action.LOAN_VIEW_OWN)),
    db: AsyncSession = Depends(get_db),
) -> LoanHistoryResponse:
    filters.initiated_by_id = current_user.id
    return LoanHistoryResponse(**await loan_service.loan_history(db, filters, page=page, page_size=page_size))


@router.post(
    "/mark-application-fee-paid-bulk",
    response_model=BulkFeePaidResponse,
    summary="Mark the application fee paid on several loans",
)
async def mark_fee_paid_bulk(
    payload: BulkFeePaidRequest,
    current_user: User = Depends(deps.require_action(Action.LOAN_MARK_FEE_PAID)),
    db: AsyncSession = Depends(get_db),
) -> BulkFeePaidResponse:
    updated, skipped = await loan_service.mark_fee_paid_bulk(db, payload.loan_ids, current_user)
    return BulkFeePaidResponse(updated=updated, skipped=skipped)


@router.get("/{loan_id}", response_model=LoanDetailResponse, summary="Loan detail with workflow actions")
async def get_loan(
    loan_id: UUID,
    current_user: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> LoanDetailResponse:
    return LoanDetailResponse.model_validate(await loan_service.loan_detail(db, loan_id, current_user))


async def _transition(
    db: AsyncSession,
    loan_id: UUID,
    action: WorkflowAction,
    current_user: User,
    payload: LoanTransitionRequest | None = None,
    rail: PaymentRail | None = None,
) -> LoanDTO:
    loan = await loan_service.transition_loan(
        db,
        loan_id,
        action,
        current_user,
        notes=payload.notes if payload else None,
        rail=rail,
    )
    return LoanDTO.model_validate(loan)


@router.put("/{loan_id}/approve", response_model=LoanDTO, summary="Approve an initiated loan")
async def approve_loan(
    loan_id: UUID,
    payload: LoanTransitionRequest | None = None,
    current_user: User = Depends(deps.require_action(Action.LOAN_APPROVE)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _transition(db, loan_id, WorkflowAction.APPROVE, current_user, payload)


@router.put("/{loan_id}/reject", response_model=LoanDTO, summary="Reject an initiated loan")
async def reject_loan(
    loan_id: UUID,
    payload: LoanTransitionRequest | None = None,
    current_user: User = Depends(deps.require_action(Action.LOAN_REJECT)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _transition(db, loan_id, WorkflowAction.REJECT, current_user, payload)


@router.post("/{loan_id}/disburse", response_model=LoanDTO, summary="Disburse an approved loan")
async def disburse_loan(
    loan_id: UUID,
    current_user: User = Depends(deps.require_action(Action.LOAN_DISBURSE)),
    rail: PaymentRail = Depends(get_payment_rail),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _transition(db, loan_id, WorkflowAction.DISBURSE, current_user, rail=rail)


@router.put("/{loan_id}/cancel", response_model=LoanDTO, summary="Cancel a loan before disbursement")
async def cancel_loan(
    loan_id: UUID,
    payload: LoanTransitionRequest | None = None,
    current_user: User = Depends(deps.require_action(Action.LOAN_CANCEL)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _transition(db, loan_id, WorkflowAction.CANCEL, current_user, payload)


@router.put("/{loan_id}/default", response_model=LoanDTO, summary="Mark a disbursed loan as defaulted")
async def default_loan(
    loan_id: UUID,
    payload: LoanTransitionRequest | None = None,
    current_user: User = Depends(deps.require_action(Action.LOAN_MARK_DEFAULT)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _transition(db, loan_id, WorkflowAction.MARK_DEFAULT, current_user, payload)


@router.put(
    "/{loan_id}/mark-application-fee-paid",
    response_model=LoanDTO,
    summary="Mark the application fee as paid",
)
async def mark_fee_paid(
    loan_id: UUID,
    current_user: User = Depends(deps.require_action(Action.LOAN_MARK_FEE_PAID)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loan_service.mark_fee_paid(db, loan_id, current_user))


@router.get("/{loan_id}/repayments", response_model=RepaymentListResponse, summary="List loan repayments")
async def list_repayments(
    loan_id: UUID,
    _: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> RepaymentListResponse:
    loan, items = await repayment_service.list_repayments(db, loan_id)
    return RepaymentListResponse(
        items=items,
        total=len(items),
        total_paid_cents=loan.total_paid_cents,
        outstanding_cents=loan.outstanding_cents,
    )


@router.post(
    "/{loan_id}/repayments",
    response_model=RepaymentListResponse,
    status_code=201,
    summary="Record a repayment",
)
async def record_repayment(
    loan_id: UUID,
    payload: RepaymentCreateRequest,
    current_user: User = Depends(deps.require_action(Action.LOAN_REPAY)),
    db: AsyncSession = Depends(get_db),
) -> RepaymentListResponse:
    loan, repayment = await repayment_service.record_repayment(db, loan_id, payload, current_user)
    return RepaymentListResponse(
        items=[repayment],
        total=1,
        total_paid_cents=loan.total_paid_cents,
        outstanding_cents=loan.outstanding_cents,
    )
