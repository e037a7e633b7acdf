from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.user import User
from dhamira.schemas.savings import SavingsAdjustRequest, SavingsListResponse, SavingsTransactionDTO
from dhamira.services import savings as savings_service

router = APIRouter(prefix="/savings", tags=["savings"])


@router.get("", response_model=SavingsListResponse, summary="Savings ledger history")
async def list_savings(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    client_id: UUID | None = Query(default=None),
    group_id: UUID | None = Query(default=None),
    _: User = Depends(deps.require_action(Action.SAVINGS_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> SavingsListResponse:
    items, total = await savings_service.list_transactions(
        db,
        client_id=client_id,
        group_id=group_id,
        page=page,
        page_size=page_size,
    )
    return SavingsListResponse(items=items, total=total)


@router.post("", response_model=SavingsTransactionDTO, status_code=201, summary="Add or deduct client savings")
async def adjust_savings(
    payload: SavingsAdjustRequest,
    current_user: User = Depends(deps.require_action(Action.SAVINGS_ADJUST)),
    db: AsyncSession = Depends(get_db),
) -> SavingsTransactionDTO:
    return await savings_service.adjust(
        db,
        payload.client_id,
        payload.amount_cents,
        current_user,
        notes=payload.notes,
    )
