from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.exceptions import ConflictError
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.branch import Branch
from dhamira.models.user import User
from dhamira.schemas.branch import BranchCreateRequest, BranchDTO, BranchListResponse, BranchUpdateRequest
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404

router = APIRouter(prefix="/branches", tags=["branches"])


@router.get("", response_model=BranchListResponse, summary="List branches")
async def list_branches(
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=500),
    _: User = Depends(deps.require_action(Action.BRANCH_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> BranchListResponse:
    total = (await db.execute(select(func.count()).select_from(Branch))).scalar_one()
    stmt = select(Branch).order_by(Branch.name.asc()).offset((page - 1) * page_size).limit(page_size)
    items = (await db.execute(stmt)).scalars().all()
    return BranchListResponse(items=items, total=total)


@router.post("", response_model=BranchDTO, status_code=201, summary="Create a branch")
async def create_branch(
    payload: BranchCreateRequest,
    current_user: User = Depends(deps.require_action(Action.BRANCH_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    branch = Branch(
        name=payload.name.strip(),
        code=payload.code.strip().upper(),
        location=payload.location,
        phone=payload.phone,
    )
    db.add(branch)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Branch code already exists", code="duplicate_branch") from exc
    record_audit_log(
        db,
        actor_id=current_user.id,
        action="branch.created",
        resource_type="branch",
        resource_id=str(branch.id),
        new_value=model_snapshot(branch),
    )
    await db.commit()
    await db.refresh(branch)
    return branch


@router.get("/{branch_id}", response_model=BranchDTO, summary="Get a branch")
async def get_branch(
    branch_id: UUID,
    _: User = Depends(deps.require_action(Action.BRANCH_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    return await get_or_404(db, Branch, branch_id, label="Branch")


@router.put("/{branch_id}", response_model=BranchDTO, summary="Update a branch")
async def update_branch(
    branch_id: UUID,
    payload: BranchUpdateRequest,
    current_user: User = Depends(deps.require_action(Action.BRANCH_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    branch = await get_or_404(db, Branch, branch_id, label="Branch")
    old_snapshot = model_snapshot(branch)
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name"):
        branch.name = updates["name"].strip()
    if "location" in updates:
        branch.location = updates["location"]
    if "phone" in updates:
        branch.phone = updates["phone"]
    db.add(branch)
    record_audit_log(
        db,
        actor_id=current_user.id,
        action="branch.updated",
        resource_type="branch",
        resource_id=str(branch.id),
        old_value=old_snapshot,
        new_value=model_snapshot(branch),
    )
    await db.commit()
    await db.refresh(branch)
    return branch
