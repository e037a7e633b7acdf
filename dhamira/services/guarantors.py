from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ConflictError, ValidationFailed, WorkflowError
from dhamira.models.client import Client
from dhamira.models.guarantor import Guarantor
from dhamira.models.loan import Loan
from dhamira.models.user import User
from dhamira.schemas.common import GuarantorStatus, LoanStatus
from dhamira.schemas.guarantor import GuarantorCreateRequest
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404

logger = logging.getLogger(__name__)


def accepted_count(guarantors: Iterable[Guarantor]) -> int:
    return sum(1 for guarantor in guarantors if guarantor.status == GuarantorStatus.ACCEPTED.value)


async def list_for_loan(db: AsyncSession, loan_id: UUID) -> list[Guarantor]:
    stmt = select(Guarantor).where(Guarantor.loan_id == loan_id).order_by(Guarantor.created_at.asc())
    return list((await db.execute(stmt)).scalars().all())


async def add_guarantor(db: AsyncSession, payload: GuarantorCreateRequest, actor: User) -> Guarantor:
    loan = await get_or_404(db, Loan, payload.loan_id, label="Loan")
    if loan.status != LoanStatus.INITIATED.value:
        raise WorkflowError(
            f"Guarantors can only be added while the loan is initiated (status '{loan.status}')",
            code="invalid_transition",
        )

    name = (payload.name or "").strip()
    national_id = (payload.national_id or "").strip()
    phone = payload.phone
    is_member = False
    if payload.client_id is not None:
        if payload.client_id == loan.client_id:
            raise ValidationFailed("The borrower cannot guarantee their own loan")
        member = await get_or_404(db, Client, payload.client_id, label="Client")
        name = member.name
        national_id = member.national_id
        phone = phone or member.phone
        is_member = True
    if not name or not national_id:
        raise ValidationFailed("Guarantor name and national_id are required")

    existing = await list_for_loan(db, loan.id)
    if any(g.national_id == national_id for g in existing):
        raise ConflictError(
            "This guarantor is already attached to the loan",
            code="duplicate_guarantor",
            details={"national_id": national_id},
        )

    guarantor = Guarantor(
        loan_id=loan.id,
        client_id=payload.client_id,
        name=name,
        national_id=national_id,
        phone=phone,
        relationship=payload.relationship,
        is_member=is_member,
        id_copy_url=payload.id_copy_url,
        photo_url=payload.photo_url,
        status=GuarantorStatus.PENDING.value,
    )
    db.add(guarantor)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor.id,
        action="guarantor.added",
        resource_type="guarantor",
        resource_id=str(guarantor.id),
        new_value=model_snapshot(guarantor),
    )
    await db.commit()
    await db.refresh(guarantor)
    return guarantor


async def decide_guarantor(
    db: AsyncSession,
    guarantor_id: UUID,
    status: GuarantorStatus,
    actor: User,
) -> Guarantor:
    """Accept or reject a guarantor; the latest decision wins."""
    guarantor = await get_or_404(db, Guarantor, guarantor_id, label="Guarantor")
    old_snapshot = model_snapshot(guarantor)
    guarantor.status = status.value
    guarantor.decided_by_id = actor.id
    guarantor.decided_at = datetime.now(timezone.utc)
    db.add(guarantor)
    record_audit_log(
        db,
        actor_id=actor.id,
        action=f"guarantor.{status.value}",
        resource_type="guarantor",
        resource_id=str(guarantor.id),
        old_value=old_snapshot,
        new_value=model_snapshot(guarantor),
    )
    await db.commit()
    await db.refresh(guarantor)
    logger.info("Guarantor %s %s for loan %s", guarantor.id, status.value, guarantor.loan_id)
    return guarantor
