from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.client import Client
from dhamira.models.user import User
from dhamira.schemas.client import ClientCreateRequest, ClientDTO, ClientListResponse, ClientUpdateRequest
from dhamira.schemas.common import RecordStatus
from dhamira.schemas.savings import SavingsDepositRequest, SavingsTransactionDTO
from dhamira.services import clients as client_service
from dhamira.services import savings as savings_service
from dhamira.services.records import get_or_404

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("", response_model=ClientListResponse, summary="List clients")
async def list_clients(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=1000),
    status: RecordStatus | None = Query(default=None),
    group_id: UUID | None = Query(default=None),
    branch_id: UUID | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    _: User = Depends(deps.require_action(Action.CLIENT_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> ClientListResponse:
    filters = client_service.ClientFilters(
        status=status.value if status else None,
        group_id=group_id,
        branch_id=branch_id,
        search=search,
    )
    items, total = await client_service.list_clients(db, filters, page=page, page_size=page_size)
    return ClientListResponse(items=items, total=total)


@router.post("", response_model=ClientDTO, status_code=201, summary="Register a client")
async def create_client(
    payload: ClientCreateRequest,
    current_user: User = Depends(deps.require_action(Action.CLIENT_CREATE)),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    return await client_service.create_client(db, payload, current_user)


@router.get("/{client_id}", response_model=ClientDTO, summary="Get a client")
async def get_client(
    client_id: UUID,
    _: User = Depends(deps.require_action(Action.CLIENT_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    return await get_or_404(db, Client, client_id, label="Client")


@router.put("/{client_id}", response_model=ClientDTO, summary="Update client details")
async def update_client(
    client_id: UUID,
    payload: ClientUpdateRequest,
    current_user: User = Depends(deps.require_action(Action.CLIENT_UPDATE)),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    return await client_service.update_client(db, client_id, payload, current_user)


@router.put("/{client_id}/approve", response_model=ClientDTO, summary="Approve a pending client")
async def approve_client(
    client_id: UUID,
    current_user: User = Depends(deps.require_action(Action.CLIENT_APPROVE)),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    return await client_service.set_client_status(db, client_id, RecordStatus.ACTIVE, current_user)


@router.put("/{client_id}/reject", response_model=ClientDTO, summary="Reject a pending client")
async def reject_client(
    client_id: UUID,
    current_user: User = Depends(deps.require_action(Action.CLIENT_APPROVE)),
    db: AsyncSession = Depends(get_db),
) -> ClientDTO:
    return await client_service.set_client_status(db, client_id, RecordStatus.REJECTED, current_user)


@router.post(
    "/{client_id}/savings",
    response_model=SavingsTransactionDTO,
    status_code=201,
    summary="Add to a client's savings",
)
async def deposit_savings(
    client_id: UUID,
    payload: SavingsDepositRequest,
    current_user: User = Depends(deps.require_action(Action.SAVINGS_DEPOSIT)),
    db: AsyncSession = Depends(get_db),
) -> SavingsTransactionDTO:
    return await savings_service.deposit(db, client_id, payload.amount_cents, current_user, notes=payload.notes)
