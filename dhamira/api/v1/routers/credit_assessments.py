from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.exceptions import NotFoundError
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.loan import Loan
from dhamira.models.user import User
from dhamira.schemas.credit_assessment import (
    CreditAssessmentCreateRequest,
    CreditAssessmentDTO,
    CreditAssessmentListResponse,
)
from dhamira.services import credit_assessments
from dhamira.services.records import get_or_404

router = APIRouter(prefix="/credit-assessments", tags=["credit-assessments"])


@router.post("", response_model=CreditAssessmentDTO, status_code=201, summary="Record a 5 C's assessment")
async def create_assessment(
    payload: CreditAssessmentCreateRequest,
    current_user: User = Depends(deps.require_action(Action.LOAN_ASSESS)),
    db: AsyncSession = Depends(get_db),
) -> CreditAssessmentDTO:
    return await credit_assessments.create_assessment(db, payload, current_user)


@router.get("", response_model=CreditAssessmentListResponse, summary="Assessment history for a loan")
async def list_assessments(
    loan_id: UUID = Query(...),
    _: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> CreditAssessmentListResponse:
    await get_or_404(db, Loan, loan_id, label="Loan")
    items = await credit_assessments.list_for_loan(db, loan_id)
    return CreditAssessmentListResponse(items=items, total=len(items))


@router.get("/{loan_id}", response_model=CreditAssessmentDTO, summary="Latest assessment for a loan")
async def latest_assessment(
    loan_id: UUID,
    _: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> CreditAssessmentDTO:
    assessment = await credit_assessments.latest_for_loan(db, loan_id)
    if assessment is None:
        raise NotFoundError("No credit assessment recorded for this loan", details={"loan_id": str(loan_id)})
    return assessment
