from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.api import deps
from dhamira.core.permissions import Action
from dhamira.db.session import get_db
from dhamira.models.audit_log import AuditLog
from dhamira.models.user import User
from dhamira.schemas.audit import AuditActor, AuditLogEntry, AuditLogListResponse


router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


def _filters(
    *,
    prefixes: list[str] | None,
    actions: list[str] | None,
    resource_type: str | None,
    resource_id: str | None,
    loan_id: UUID | None,
    actor_id: UUID | None,
    created_from: datetime | None,
    created_to: datetime | None,
) -> list:
    conditions = []
    if loan_id is not None:
        # Loan trail: the loan itself plus rows tagged with it (guarantors, assessments, repayments).
        conditions.append(
            or_(
                (AuditLog.resource_type == "loan") & (AuditLog.resource_id == str(loan_id)),
                AuditLog.new_value["loan_id"].as_string() == str(loan_id),
            )
        )
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if resource_id:
        conditions.append(AuditLog.resource_id == resource_id)
    if actor_id:
        conditions.append(AuditLog.actor_id == actor_id)
    if created_from:
        conditions.append(AuditLog.created_at >= created_from)
    if created_to:
        conditions.append(AuditLog.created_at <= created_to)
    if actions:
        conditions.append(AuditLog.action.in_(actions))
    if prefixes:
        conditions.append(or_(*(AuditLog.action.startswith(prefix) for prefix in prefixes)))
    return conditions


@router.get("", response_model=AuditLogListResponse, summary="List audit logs")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    feature: list[str] | None = Query(default=None, description="Action prefixes such as 'loan.' or 'client.'"),
    action: list[str] | None = Query(default=None),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    loan_id: UUID | None = Query(default=None),
    actor_id: UUID | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    _: User = Depends(deps.require_action(Action.AUDIT_LOG_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> AuditLogListResponse:
    conditions = _filters(
        prefixes=feature,
        actions=action,
        resource_type=resource_type,
        resource_id=resource_id,
        loan_id=loan_id,
        actor_id=actor_id,
        created_from=created_from,
        created_to=created_to,
    )
    total = (await db.execute(select(func.count()).select_from(AuditLog).where(*conditions))).scalar_one()

    stmt = (
        select(AuditLog, User)
        .outerjoin(User, User.id == AuditLog.actor_id)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items: list[AuditLogEntry] = []
    for entry, actor in (await db.execute(stmt)).all():
        item = AuditLogEntry.model_validate(entry)
        if actor is not None:
            item.actor = AuditActor(id=actor.id, username=actor.username, full_name=actor.full_name, role=actor.role)
        items.append(item)
    return AuditLogListResponse(items=items, total=total)
