from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ConflictError
from dhamira.core.permissions import Role
from dhamira.models.client import Client
from dhamira.models.group import Group
from dhamira.models.user import User
from dhamira.schemas.client import ClientCreateRequest, ClientUpdateRequest
from dhamira.schemas.common import RecordStatus
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404


@dataclass(slots=True)
class ClientFilters:
    status: str | None = None
    group_id: UUID | None = None
    branch_id: UUID | None = None
    loan_officer_id: UUID | None = None
    search: str | None = None

    def conditions(self) -> list[Any]:
        conditions: list[Any] = []
        if self.status:
            conditions.append(Client.status == self.status)
        if self.group_id:
            conditions.append(Client.group_id == self.group_id)
        if self.branch_id:
            conditions.append(Client.branch_id == self.branch_id)
        if self.loan_officer_id:
            conditions.append(Client.loan_officer_id == self.loan_officer_id)
        if self.search:
            pattern = f"%{self.search.strip()}%"
            conditions.append(
                or_(
                    Client.name.ilike(pattern),
                    Client.national_id.ilike(pattern),
                    Client.phone.ilike(pattern),
                )
            )
        return conditions


async def list_clients(
    db: AsyncSession,
    filters: ClientFilters,
    *,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Client], int]:
    conditions = filters.conditions()
    count_stmt = select(func.count()).select_from(Client).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(Client)
        .where(*conditions)
        .order_by(Client.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def _ensure_unique_national_id(db: AsyncSession, national_id: str) -> None:
    stmt = select(Client).where(Client.national_id == national_id)
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        raise ConflictError(
            "A client with this national id already exists",
            code="duplicate_client",
            details={"national_id": national_id},
        )


async def create_client(db: AsyncSession, payload: ClientCreateRequest, actor: User) -> Client:
    national_id = payload.national_id.strip()
    await _ensure_unique_national_id(db, national_id)
    if payload.group_id is not None:
        await get_or_404(db, Group, payload.group_id, label="Group")

    loan_officer_id = payload.loan_officer_id
    if loan_officer_id is None and actor.role == Role.LOAN_OFFICER.value:
        loan_officer_id = actor.id
    client = Client(
        name=payload.name.strip(),
        national_id=national_id,
        phone=payload.phone,
        residence=payload.residence,
        business_type=payload.business_type,
        branch_id=payload.branch_id or actor.branch_id,
        group_id=payload.group_id,
        loan_officer_id=loan_officer_id,
        status=RecordStatus.PENDING.value,
        savings_balance_cents=0,
    )
    db.add(client)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor.id,
        action="client.created",
        resource_type="client",
        resource_id=str(client.id),
        new_value=model_snapshot(client),
    )
    await db.commit()
    await db.refresh(client)
    return client


SIGNATORY_POSTS = ("chairperson", "secretary", "treasurer")


async def _ensure_not_signatory(db: AsyncSession, client: Client) -> None:
    """A client holding a signatory post cannot leave the group."""
    if client.group_id is None:
        return
    group = (await db.execute(select(Group).where(Group.id == client.group_id))).scalar_one_or_none()
    if group is None:
        return
    posts = [post for post in SIGNATORY_POSTS if getattr(group, f"{post}_id") == client.id]
    if posts:
        raise ConflictError(
            f"Client is the group {posts[0]}; assign another signatory before moving them",
            code="invalid_signatories",
            details={"group_id": str(group.id), "posts": posts},
        )


async def update_client(
    db: AsyncSession,
    client_id: UUID,
    payload: ClientUpdateRequest,
    actor: User,
) -> Client:
    client = await get_or_404(db, Client, client_id, label="Client")
    old_snapshot = model_snapshot(client)
    updates = payload.model_dump(exclude_unset=True)
    if "group_id" in updates and updates["group_id"] != client.group_id:
        await _ensure_not_signatory(db, client)
    if updates.get("group_id") is not None:
        await get_or_404(db, Group, updates["group_id"], label="Group")
    for field_name, value in updates.items():
        if field_name == "name" and value is None:
            continue
        setattr(client, field_name, value)
    db.add(client)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="client.updated",
        resource_type="client",
        resource_id=str(client.id),
        old_value=old_snapshot,
        new_value=model_snapshot(client),
    )
    await db.commit()
    await db.refresh(client)
    return client


async def set_client_status(
    db: AsyncSession,
    client_id: UUID,
    status: RecordStatus,
    actor: User,
) -> Client:
    client = await get_or_404(db, Client, client_id, label="Client")
    if client.status != RecordStatus.PENDING.value:
        raise ConflictError(
            f"Client has already been {client.status}",
            code="already_decided",
        )
    old_snapshot = model_snapshot(client)
    client.status = status.value
    db.add(client)
    record_audit_log(
        db,
        actor_id=actor.id,
        action=f"client.{'approved' if status is RecordStatus.ACTIVE else 'rejected'}",
        resource_type="client",
        resource_id=str(client.id),
        old_value=old_snapshot,
        new_value=model_snapshot(client),
    )
    await db.commit()
    await db.refresh(client)
    return client
