from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.user import User
from dhamira.schemas.common import GuarantorStatus
from dhamira.schemas.guarantor import GuarantorCreateRequest, GuarantorDTO, GuarantorListResponse
from dhamira.services import guarantors as guarantor_service

router = APIRouter(prefix="/guarantors", tags=["guarantors"])


@router.post("", response_model=GuarantorDTO, status_code=201, summary="Add a guarantor to a loan")
async def add_guarantor(
    payload: GuarantorCreateRequest,
    current_user: User = Depends(deps.require_action(Action.GUARANTOR_ADD)),
    db: AsyncSession = Depends(get_db),
) -> GuarantorDTO:
    return await guarantor_service.add_guarantor(db, payload, current_user)


@router.get("", response_model=GuarantorListResponse, summary="List guarantors for a loan")
async def list_guarantors(
    loan_id: UUID = Query(...),
    _: User = Depends(deps.require_action(Action.LOAN_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> GuarantorListResponse:
    items = await guarantor_service.list_for_loan(db, loan_id)
    return GuarantorListResponse(
        items=items,
        total=len(items),
        accepted=guarantor_service.accepted_count(items),
    )


@router.put("/{guarantor_id}/accept", response_model=GuarantorDTO, summary="Accept a guarantor")
async def accept_guarantor(
    guarantor_id: UUID,
    current_user: User = Depends(deps.require_action(Action.GUARANTOR_DECIDE)),
    db: AsyncSession = Depends(get_db),
) -> GuarantorDTO:
    return await guarantor_service.decide_guarantor(db, guarantor_id, GuarantorStatus.ACCEPTED, current_user)


@router.put("/{guarantor_id}/reject", response_model=GuarantorDTO, summary="Reject a guarantor")
async def reject_guarantor(
    guarantor_id: UUID,
    current_user: User = Depends(deps.require_action(Action.GUARANTOR_DECIDE)),
    db: AsyncSession = Depends(get_db),
) -> GuarantorDTO:
    return await guarantor_service.decide_guarantor(db, guarantor_id, GuarantorStatus.REJECTED, current_user)
