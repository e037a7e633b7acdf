from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ConflictError, ValidationFailed
from dhamira.core.permissions import Role
from dhamira.models.client import Client
from dhamira.models.group import SIGNATORY_ROLES, Group
from dhamira.models.user import User
from dhamira.schemas.common import RecordStatus
from dhamira.schemas.group import GroupCreateRequest, GroupUpdateRequest
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404


def validate_signatories(
    status: RecordStatus | str,
    chairperson_id: Any,
    secretary_id: Any,
    treasurer_id: Any,
) -> list[str]:
    """Return the signatory problems for a group; an empty list means valid.

    Assigned signatories must be pairwise distinct, and an active group must
    have all three roles filled.
    """
    assigned = dict(zip(SIGNATORY_ROLES, (chairperson_id, secretary_id, treasurer_id)))
    errors: list[str] = []
    if RecordStatus(status) is RecordStatus.ACTIVE:
        for role, member_id in assigned.items():
            if not member_id:
                errors.append(f"An active group requires a {role}")
    seen: dict[str, str] = {}
    for role, member_id in assigned.items():
        if not member_id:
            continue
        key = str(member_id)
        if key in seen:
            errors.append(f"The {role} must be a different member from the {seen[key]}")
        else:
            seen[key] = role
    return errors


def ensure_signatories(status: RecordStatus | str, group: Any) -> None:
    errors = validate_signatories(status, group.chairperson_id, group.secretary_id, group.treasurer_id)
    if errors:
        raise ValidationFailed(errors[0], code="invalid_signatories", details={"errors": errors})


def _signatory_ids(group: Any) -> list[UUID]:
    return [
        member_id
        for member_id in (group.chairperson_id, group.secretary_id, group.treasurer_id)
        if member_id
    ]


async def _load_signatories(db: AsyncSession, ids: list[UUID]) -> dict[UUID, Client]:
    if not ids:
        return {}
    stmt = select(Client).where(Client.id.in_(ids))
    found = {client.id: client for client in (await db.execute(stmt)).scalars().all()}
    missing = [str(member_id) for member_id in ids if member_id not in found]
    if missing:
        raise ValidationFailed(
            "Signatory client not found",
            code="invalid_signatories",
            details={"missing": missing},
        )
    return found


async def _ensure_members(db: AsyncSession, group: Group) -> None:
    members = await _load_signatories(db, _signatory_ids(group))
    outsiders = [str(client.id) for client in members.values() if client.group_id != group.id]
    if outsiders:
        raise ValidationFailed(
            "Signatories must be members of the group",
            code="invalid_signatories",
            details={"not_members": outsiders},
        )


async def list_groups(
    db: AsyncSession,
    *,
    status: str | None = None,
    branch_id: UUID | None = None,
    loan_officer_id: UUID | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Group], int]:
    conditions = []
    if status:
        conditions.append(Group.status == status)
    if branch_id:
        conditions.append(Group.branch_id == branch_id)
    if loan_officer_id:
        conditions.append(Group.loan_officer_id == loan_officer_id)
    total = int((await db.execute(select(func.count()).select_from(Group).where(*conditions))).scalar_one() or 0)
    stmt = (
        select(Group)
        .where(*conditions)
        .order_by(Group.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def create_group(db: AsyncSession, payload: GroupCreateRequest, actor: User) -> Group:
    loan_officer_id = payload.loan_officer_id
    if loan_officer_id is None and actor.role == Role.LOAN_OFFICER.value:
        loan_officer_id = actor.id
    group = Group(
        name=payload.name.strip(),
        branch_id=payload.branch_id or actor.branch_id,
        loan_officer_id=loan_officer_id,
        meeting_day=payload.meeting_day,
        meeting_time=payload.meeting_time,
        status=RecordStatus.PENDING.value,
        chairperson_id=payload.chairperson_id,
        secretary_id=payload.secretary_id,
        treasurer_id=payload.treasurer_id,
    )
    ensure_signatories(RecordStatus.PENDING, group)

    # Signatories named at creation join the new group.
    members = await _load_signatories(db, _signatory_ids(group))
    taken = [str(client.id) for client in members.values() if client.group_id is not None]
    if taken:
        raise ConflictError(
            "Signatories already belong to another group",
            code="invalid_signatories",
            details={"clients": taken},
        )
    db.add(group)
    await db.flush()
    for client in members.values():
        client.group_id = group.id
        db.add(client)

    record_audit_log(
        db,
        actor_id=actor.id,
        action="group.created",
        resource_type="group",
        resource_id=str(group.id),
        new_value=model_snapshot(group),
    )
    await db.commit()
    await db.refresh(group)
    return group


async def update_group(
    db: AsyncSession,
    group_id: UUID,
    payload: GroupUpdateRequest,
    actor: User,
) -> Group:
    group = await get_or_404(db, Group, group_id, label="Group")
    old_snapshot = model_snapshot(group)
    for field_name, value in payload.model_dump(exclude_unset=True).items():
        if field_name == "name" and value is None:
            continue
        setattr(group, field_name, value)
    ensure_signatories(group.status, group)
    await _ensure_members(db, group)
    db.add(group)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="group.updated",
        resource_type="group",
        resource_id=str(group.id),
        old_value=old_snapshot,
        new_value=model_snapshot(group),
    )
    await db.commit()
    await db.refresh(group)
    return group


async def approve_group(db: AsyncSession, group_id: UUID, actor: User) -> Group:
    group = await get_or_404(db, Group, group_id, label="Group")
    if group.status == RecordStatus.ACTIVE.value:
        raise ConflictError("Group is already active", code="already_decided")
    ensure_signatories(RecordStatus.ACTIVE, group)
    await _ensure_members(db, group)
    old_snapshot = model_snapshot(group)
    group.status = RecordStatus.ACTIVE.value
    db.add(group)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="group.approved",
        resource_type="group",
        resource_id=str(group.id),
        old_value=old_snapshot,
        new_value=model_snapshot(group),
    )
    await db.commit()
    await db.refresh(group)
    return group
