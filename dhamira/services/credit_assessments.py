from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.models.credit_assessment import CreditAssessment
from dhamira.models.loan import Loan
from dhamira.models.user import User
from dhamira.schemas.credit_assessment import CreditAssessmentCreateRequest
from dhamira.services import credit_scoring, loan_workflow
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.records import get_or_404

logger = logging.getLogger(__name__)


async def latest_for_loan(db: AsyncSession, loan_id: UUID) -> CreditAssessment | None:
    stmt = (
        select(CreditAssessment)
        .where(CreditAssessment.loan_id == loan_id)
        .order_by(CreditAssessment.created_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalars().first()


async def list_for_loan(db: AsyncSession, loan_id: UUID) -> list[CreditAssessment]:
    stmt = (
        select(CreditAssessment)
        .where(CreditAssessment.loan_id == loan_id)
        .order_by(CreditAssessment.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def create_assessment(
    db: AsyncSession,
    payload: CreditAssessmentCreateRequest,
    actor: User,
) -> CreditAssessment:
    loan = await get_or_404(db, Loan, payload.loan_id, label="Loan")
    facts = loan_workflow.WorkflowFacts.from_loan(loan)
    decision = loan_workflow.evaluate(
        loan_workflow.WorkflowAction.ASSESS,
        role=actor.role,
        actor_id=actor.id,
        facts=facts,
    )
    decision.raise_for_denial()

    result = credit_scoring.score(
        payload.character,
        payload.capacity,
        payload.capital,
        payload.collateral,
        payload.conditions,
    )
    if not result.passed:
        # Soft block: the operator confirmed the override client-side.
        logger.warning(
            "Assessment below threshold recorded loan_id=%s total=%s threshold=%s",
            loan.id,
            result.total_score,
            result.threshold,
        )

    assessment = CreditAssessment(
        loan_id=loan.id,
        officer_id=actor.id,
        character=payload.character,
        capacity=payload.capacity,
        capital=payload.capital,
        collateral=payload.collateral,
        conditions=payload.conditions,
        total_score=result.total_score,
        passed=result.passed,
        officer_notes=payload.officer_notes,
    )
    db.add(assessment)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor.id,
        action="loan.assessed",
        resource_type="loan",
        resource_id=str(loan.id),
        new_value=model_snapshot(assessment),
    )
    await db.commit()
    await db.refresh(assessment)
    return assessment
