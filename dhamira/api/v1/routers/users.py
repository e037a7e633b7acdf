from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.exceptions import ConflictError, ValidationFailed
from dhamira.core.permissions import Action, Role
from dhamira.core.security import get_password_hash
from dhamira.db.session import get_db
from dhamira.models.branch import Branch
from dhamira.models.user import User
from dhamira.schemas.users import AdminCreateRequest, LoanOfficerCreateRequest, UserCreateBase, UserDTO, UserListResponse
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404

router = APIRouter(tags=["users"])

ADMIN_ROLES = sorted(role.value for role in Role.admin_roles())


async def _list_users(db: AsyncSession, roles: list[str], page: int, page_size: int) -> UserListResponse:
    conditions = [User.role.in_(roles), User.is_active.is_(True)]
    total = (await db.execute(select(func.count()).select_from(User).where(*conditions))).scalar_one()
    stmt = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = (await db.execute(stmt)).scalars().all()
    return UserListResponse(items=items, total=total)


async def _create_user(db: AsyncSession, payload: UserCreateBase, role: str, actor: User) -> User:
    clauses = [User.username == payload.username]
    if payload.email:
        clauses.append(User.email == payload.email)
    existing = (await db.execute(select(User).where(or_(*clauses)))).scalars().first()
    if existing is not None:
        raise ConflictError("A user with this username or email already exists", code="duplicate_user")
    if payload.branch_id is not None:
        await get_or_404(db, Branch, payload.branch_id, label="Branch")
    try:
        hashed_password = get_password_hash(payload.password)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc

    user = User(
        username=payload.username,
        email=payload.email,
        full_name=payload.full_name or payload.username,
        phone=payload.phone,
        hashed_password=hashed_password,
        role=role,
        branch_id=payload.branch_id,
        is_active=True,
        token_version=0,
    )
    db.add(user)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor.id,
        action=f"user.created.{role}",
        resource_type="user",
        resource_id=str(user.id),
        new_value=model_snapshot(user, exclude={"hashed_password"}),
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/admins", response_model=UserListResponse, summary="List admin users")
async def list_admins(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _: User = Depends(deps.require_action(Action.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    return await _list_users(db, ADMIN_ROLES, page, page_size)


@router.post("/admins", response_model=UserDTO, status_code=201, summary="Create an admin user")
async def create_admin(
    payload: AdminCreateRequest,
    current_user: User = Depends(deps.require_action(Action.ADMIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> UserDTO:
    return await _create_user(db, payload, payload.role, current_user)


@router.delete("/admins/{user_id}", status_code=204, summary="Deactivate an admin user")
async def delete_admin(
    user_id: UUID,
    current_user: User = Depends(deps.require_action(Action.ADMIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> None:
    user = await get_or_404(db, User, user_id, label="User")
    if user.role not in ADMIN_ROLES:
        raise ValidationFailed("User is not an admin")
    if user.id == current_user.id:
        raise ValidationFailed("You cannot delete your own account")
    old_snapshot = model_snapshot(user, exclude={"hashed_password"})
    # Loans keep referencing the user, so the account is deactivated and its tokens revoked.
    user.is_active = False
    user.token_version = (user.token_version or 0) + 1
    db.add(user)
    record_audit_log(
        db,
        actor_id=current_user.id,
        action="user.deleted",
        resource_type="user",
        resource_id=str(user.id),
        old_value=old_snapshot,
        new_value=model_snapshot(user, exclude={"hashed_password"}),
    )
    await db.commit()
    return None


@router.get("/loan-officers", response_model=UserListResponse, summary="List loan officers")
async def list_loan_officers(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    _: User = Depends(deps.require_action(Action.USER_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    return await _list_users(db, [Role.LOAN_OFFICER.value], page, page_size)


@router.post("/loan-officers", response_model=UserDTO, status_code=201, summary="Create a loan officer")
async def create_loan_officer(
    payload: LoanOfficerCreateRequest,
    current_user: User = Depends(deps.require_action(Action.LOAN_OFFICER_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> UserDTO:
    return await _create_user(db, payload, Role.LOAN_OFFICER.value, current_user)
