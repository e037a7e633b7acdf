from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ValidationFailed
from dhamira.models.loan import Loan
from dhamira.models.repayment import Repayment
from dhamira.models.user import User
from dhamira.schemas.common import LoanStatus
from dhamira.schemas.repayment import RepaymentCreateRequest
from dhamira.services import loan_workflow
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404

logger = logging.getLogger(__name__)


async def list_repayments(db: AsyncSession, loan_id: UUID) -> tuple[Loan, list[Repayment]]:
    loan = await get_or_404(db, Loan, loan_id, label="Loan")
    stmt = select(Repayment).where(Repayment.loan_id == loan.id).order_by(Repayment.paid_at.desc())
    return loan, list((await db.execute(stmt)).scalars().all())


async def record_repayment(
    db: AsyncSession,
    loan_id: UUID,
    payload: RepaymentCreateRequest,
    actor: User,
) -> tuple[Loan, Repayment]:
    """Apply a repayment; the loan flips to repaid once nothing is outstanding."""
    loan = await get_or_404(db, Loan, loan_id, label="Loan", for_update=True)
    decision = loan_workflow.evaluate(
        loan_workflow.WorkflowAction.REPAY,
        role=actor.role,
        actor_id=actor.id,
        facts=loan_workflow.WorkflowFacts.from_loan(loan),
    )
    decision.raise_for_denial()
    if payload.amount_cents > loan.outstanding_cents:
        raise ValidationFailed(
            "Repayment exceeds the outstanding balance",
            code="overpayment",
            details={"outstanding_cents": loan.outstanding_cents},
        )

    old_snapshot = model_snapshot(loan)
    now = datetime.now(timezone.utc)
    repayment = Repayment(
        loan_id=loan.id,
        amount_cents=payload.amount_cents,
        method=payload.method,
        reference=payload.reference,
        paid_at=payload.paid_at or now,
        recorded_by_id=actor.id,
    )
    db.add(repayment)

    loan.total_paid_cents = (loan.total_paid_cents or 0) + payload.amount_cents
    loan.outstanding_cents = loan.total_due_cents - loan.total_paid_cents
    if loan.outstanding_cents == 0:
        loan.status = LoanStatus.REPAID.value
        loan.closed_at = now
    db.add(loan)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="loan.repay",
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(loan),
    )
    await db.commit()
    await db.refresh(loan)
    logger.info(
        "Repayment recorded loan_id=%s amount_cents=%s outstanding_cents=%s status=%s",
        loan.id,
        payload.amount_cents,
        loan.outstanding_cents,
        loan.status,
    )
    return loan, repayment
