from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.group import Group
from dhamira.models.user import User
from dhamira.schemas.common import RecordStatus
from dhamira.schemas.group import GroupCreateRequest, GroupDTO, GroupListResponse, GroupUpdateRequest
from dhamira.services import groups as group_service
from dhamira.services.records import get_or_404

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("", response_model=GroupListResponse, summary="List groups")
async def list_groups(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=1000),
    status: RecordStatus | None = Query(default=None),
    branch_id: UUID | None = Query(default=None),
    loan_officer_id: UUID | None = Query(default=None),
    _: User = Depends(deps.require_action(Action.GROUP_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> GroupListResponse:
    items, total = await group_service.list_groups(
        db,
        status=status.value if status else None,
        branch_id=branch_id,
        loan_officer_id=loan_officer_id,
        page=page,
        page_size=page_size,
    )
    return GroupListResponse(items=items, total=total)


@router.post("", response_model=GroupDTO, status_code=201, summary="Create a group")
async def create_group(
    payload: GroupCreateRequest,
    current_user: User = Depends(deps.require_action(Action.GROUP_CREATE)),
    db: AsyncSession = Depends(get_db),
) -> GroupDTO:
    return await group_service.create_group(db, payload, current_user)


@router.get("/{group_id}", response_model=GroupDTO, summary="Get a group")
async def get_group(
    group_id: UUID,
    _: User = Depends(deps.require_action(Action.GROUP_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> GroupDTO:
    return await get_or_404(db, Group, group_id, label="Group")


@router.put("/{group_id}", response_model=GroupDTO, summary="Update a group and its signatories")
async def update_group(
    group_id: UUID,
    payload: GroupUpdateRequest,
    current_user: User = Depends(deps.require_action(Action.GROUP_UPDATE)),
    db: AsyncSession = Depends(get_db),
) -> GroupDTO:
    return await group_service.update_group(db, group_id, payload, current_user)


@router.put("/{group_id}/approve", response_model=GroupDTO, summary="Approve a group")
async def approve_group(
    group_id: UUID,
    current_user: User = Depends(deps.require_action(Action.GROUP_APPROVE)),
    db: AsyncSession = Depends(get_db),
) -> GroupDTO:
    return await group_service.approve_group(db, group_id, current_user)
