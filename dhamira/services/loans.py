from __future__ import annotations

import calendar
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ConflictError, NotFoundError, PaymentRailError, ValidationFailed
from dhamira.core.settings import settings
from dhamira.models.client import Client
from dhamira.models.credit_assessment import CreditAssessment
from dhamira.models.group import Group
from dhamira.models.guarantor import Guarantor
from dhamira.models.loan import Loan
from dhamira.models.loan_approval import LoanApproval
from dhamira.models.repayment import Repayment
from dhamira.models.user import User
from dhamira.schemas.common import (
    ApprovalDecision,
    GuarantorStatus,
    LoanStatus,
    LoanType,
    RecordStatus,
)
from dhamira.schemas.loan import LoanInitiateRequest
from dhamira.services import credit_assessments, guarantors as guarantor_service, loan_workflow
from dhamira.services.audit import model_snapshot, record_audit_log
from dhamira.services.loan_workflow import WorkflowAction, WorkflowFacts
from dhamira.services.payments import PaymentRail, TransferRequest
from dhamira.services.records import get_or_404

logger = logging.getLogger(__name__)

OPEN_STATUSES = (
    LoanStatus.INITIATED.value,
    LoanStatus.APPROVED.value,
    LoanStatus.DISBURSED.value,
)


def compute_interest_cents(principal_cents: int, percent: int | None = None) -> int:
    """Flat interest on the principal, rounded half-up to the nearest cent."""
    rate = settings.loan_flat_interest_percent if percent is None else percent
    return (principal_cents * rate + 50) // 100


def fee_breakdown(principal_cents: int) -> dict[str, int]:
    interest = compute_interest_cents(principal_cents)
    return {
        "principal_cents": principal_cents,
        "interest_cents": interest,
        "total_due_cents": principal_cents + interest,
        "interest_percent": settings.loan_flat_interest_percent,
    }


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def required_savings_cents(principal_cents: int) -> int:
    percent = settings.savings_requirement_percent
    if percent <= 0:
        return 0
    return math.ceil(principal_cents * percent / 100)


def progress_percent(loan: Loan) -> float:
    if not loan.total_due_cents:
        return 0.0
    return round(loan.total_paid_cents * 100 / loan.total_due_cents, 1)


@dataclass(slots=True)
class LoanContext:
    """A loan together with the records its guards depend on."""

    loan: Loan
    guarantors: list[Guarantor]
    assessment: CreditAssessment | None

    @property
    def facts(self) -> WorkflowFacts:
        return WorkflowFacts.from_loan(
            self.loan,
            has_assessment=self.assessment is not None,
            accepted_guarantors=guarantor_service.accepted_count(self.guarantors),
        )


async def load_context(db: AsyncSession, loan_id: UUID, *, for_update: bool = False) -> LoanContext:
    loan = await get_or_404(db, Loan, loan_id, label="Loan", for_update=for_update)
    loan_guarantors = await guarantor_service.list_for_loan(db, loan.id)
    assessment = await credit_assessments.latest_for_loan(db, loan.id)
    return LoanContext(loan=loan, guarantors=loan_guarantors, assessment=assessment)


async def _resolve_client(db: AsyncSession, payload: LoanInitiateRequest) -> Client:
    if payload.client_id is not None:
        return await get_or_404(db, Client, payload.client_id, label="Client")
    stmt = select(Client).where(Client.national_id == payload.client_national_id)
    client = (await db.execute(stmt)).scalar_one_or_none()
    if client is None:
        raise NotFoundError(
            "Client not found",
            details={"national_id": payload.client_national_id},
        )
    return client


async def initiate_loan(
    db: AsyncSession,
    payload: LoanInitiateRequest,
    actor: User,
) -> tuple[Loan, list[Guarantor]]:
    decision = loan_workflow.check_initiation(
        role=actor.role,
        loan_type=payload.loan_type,
        guarantors=payload.guarantors,
    )
    decision.raise_for_denial()

    client = await _resolve_client(db, payload)
    if client.status != RecordStatus.ACTIVE.value:
        raise ValidationFailed("Client must be approved before a loan can be initiated")

    group_id = None
    if payload.group_id is not None:
        group = await get_or_404(db, Group, payload.group_id, label="Group")
        if group.status != RecordStatus.ACTIVE.value:
            raise ValidationFailed("Group must be approved before a loan can be initiated")
        if client.group_id != group.id:
            raise ValidationFailed("Client is not a member of the selected group")
        group_id = group.id

    previous_loans = list(
        (await db.execute(select(Loan).where(Loan.client_id == client.id))).scalars().all()
    )
    open_loan = next((loan for loan in previous_loans if loan.status in OPEN_STATUSES), None)
    if open_loan is not None:
        raise ConflictError(
            "Client already has an open loan",
            code="open_loan_exists",
            details={"loan_id": str(open_loan.id), "status": open_loan.status},
        )

    required_savings = required_savings_cents(payload.principal_cents)
    if (client.savings_balance_cents or 0) < required_savings:
        raise ValidationFailed(
            f"Client must hold at least {settings.savings_requirement_percent}% of the principal in savings",
            code="insufficient_savings",
            details={
                "required_cents": required_savings,
                "balance_cents": client.savings_balance_cents or 0,
            },
        )

    resolved: list[dict[str, Any]] = []
    for entry in payload.guarantors:
        if not (entry.name.strip() and entry.national_id.strip()):
            continue
        details = {
            "client_id": entry.client_id,
            "name": entry.name.strip(),
            "national_id": entry.national_id.strip(),
            "phone": entry.phone,
            "relationship": entry.relationship,
            "id_copy_url": entry.id_copy_url,
            "photo_url": entry.photo_url,
        }
        if entry.client_id is not None:
            # Member guarantors carry the member record's identity, not the typed one.
            if entry.client_id == client.id:
                raise ValidationFailed("The borrower cannot guarantee their own loan")
            member = await get_or_404(db, Client, entry.client_id, label="Client")
            details.update(name=member.name, national_id=member.national_id, phone=entry.phone or member.phone)
        resolved.append(details)

    seen: set[str] = set()
    for details in resolved:
        national_id = details["national_id"]
        if national_id == client.national_id:
            raise ValidationFailed("The borrower cannot guarantee their own loan")
        if national_id in seen:
            raise ValidationFailed(
                "Each guarantor must have a distinct national id",
                details={"national_id": national_id},
            )
        seen.add(national_id)

    fees = fee_breakdown(payload.principal_cents)
    loan = Loan(
        id=uuid.uuid4(),
        client_id=client.id,
        group_id=group_id,
        loan_type=payload.loan_type,
        product=payload.product,
        principal_cents=payload.principal_cents,
        interest_cents=fees["interest_cents"],
        total_due_cents=fees["total_due_cents"],
        total_paid_cents=0,
        outstanding_cents=fees["total_due_cents"],
        term_months=payload.term_months,
        cycle=len(previous_loans) + 1,
        purpose=payload.purpose,
        status=LoanStatus.INITIATED.value,
        application_fee_paid=False,
        initiated_by_id=actor.id,
        version=1,
    )
    db.add(loan)

    created: list[Guarantor] = []
    for details in resolved:
        guarantor = Guarantor(
            id=uuid.uuid4(),
            loan_id=loan.id,
            is_member=details["client_id"] is not None,
            status=GuarantorStatus.PENDING.value,
            **details,
        )
        db.add(guarantor)
        created.append(guarantor)

    record_audit_log(
        db,
        actor_id=actor.id,
        action="loan.initiated",
        resource_type="loan",
        resource_id=str(loan.id),
        new_value=model_snapshot(loan),
    )
    await db.commit()
    await db.refresh(loan)
    logger.info(
        "Loan initiated loan_id=%s client_id=%s principal_cents=%s type=%s",
        loan.id,
        client.id,
        loan.principal_cents,
        loan.loan_type,
    )
    return loan, created


async def _approvals_for(db: AsyncSession, loan_id: UUID) -> list[LoanApproval]:
    stmt = select(LoanApproval).where(LoanApproval.loan_id == loan_id).order_by(LoanApproval.created_at.asc())
    return list((await db.execute(stmt)).scalars().all())


async def _repayments_for(db: AsyncSession, loan_id: UUID) -> list[Repayment]:
    stmt = select(Repayment).where(Repayment.loan_id == loan_id).order_by(Repayment.paid_at.asc())
    return list((await db.execute(stmt)).scalars().all())


async def loan_detail(db: AsyncSession, loan_id: UUID, actor: User) -> dict[str, Any]:
    context = await load_context(db, loan_id)
    loan = context.loan
    facts = context.facts
    return {
        "loan": loan,
        "approvals": await _approvals_for(db, loan.id),
        "guarantors": context.guarantors,
        "accepted_guarantors": facts.accepted_guarantors,
        "assessment": context.assessment,
        "repayments": await _repayments_for(db, loan.id),
        "progress_percent": progress_percent(loan),
        "actions": loan_workflow.available_actions(role=actor.role, actor_id=actor.id, facts=facts),
    }


@dataclass(slots=True)
class LoanFilters:
    status: str | None = None
    product: str | None = None
    loan_type: str | None = None
    client_id: UUID | None = None
    group_id: UUID | None = None
    initiated_by_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None

    def conditions(self) -> list[Any]:
        conditions: list[Any] = []
        if self.status:
            conditions.append(Loan.status == self.status)
        if self.product:
            conditions.append(Loan.product == self.product)
        if self.loan_type:
            conditions.append(Loan.loan_type == self.loan_type)
        if self.client_id:
            conditions.append(Loan.client_id == self.client_id)
        if self.group_id:
            conditions.append(Loan.group_id == self.group_id)
        if self.initiated_by_id:
            conditions.append(Loan.initiated_by_id == self.initiated_by_id)
        if self.start_date:
            conditions.append(func.date(Loan.created_at) >= self.start_date)
        if self.end_date:
            conditions.append(func.date(Loan.created_at) <= self.end_date)
        return conditions


def _page_count(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size)) if total else 0


async def list_loans(
    db: AsyncSession,
    filters: LoanFilters,
    *,
    page: int = 1,
    page_size: int = 50,
) -> dict[str, Any]:
    conditions = filters.conditions()
    count_stmt = select(func.count()).select_from(Loan).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(Loan)
        .where(*conditions)
        .order_by(Loan.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = list((await db.execute(stmt)).scalars().all())
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": _page_count(total, page_size),
    }


def _sum(column) -> Any:
    return func.coalesce(func.sum(column), 0)


async def loan_statistics(db: AsyncSession, filters: LoanFilters) -> dict[str, Any]:
    conditions = filters.conditions()
    totals = (
        select(
            func.count(Loan.id),
            _sum(Loan.principal_cents),
            _sum(Loan.total_due_cents),
            _sum(Loan.total_paid_cents),
            _sum(Loan.outstanding_cents),
        )
        .select_from(Loan)
        .where(*conditions)
    )
    row = (await db.execute(totals)).first() or (0, 0, 0, 0, 0)
    overall = {
        "total_loans": int(row[0] or 0),
        "total_principal_cents": int(row[1] or 0),
        "total_due_cents": int(row[2] or 0),
        "total_paid_cents": int(row[3] or 0),
        "total_outstanding_cents": int(row[4] or 0),
    }

    by_status_stmt = (
        select(
            Loan.status,
            func.count(Loan.id),
            _sum(Loan.principal_cents),
            _sum(Loan.total_due_cents),
            _sum(Loan.total_paid_cents),
            _sum(Loan.outstanding_cents),
        )
        .where(*conditions)
        .group_by(Loan.status)
        .order_by(Loan.status)
    )
    by_status = [
        {
            "key": status,
            "count": int(count or 0),
            "total_principal_cents": int(principal or 0),
            "total_due_cents": int(due or 0),
            "total_paid_cents": int(paid or 0),
            "total_outstanding_cents": int(outstanding or 0),
        }
        for status, count, principal, due, paid, outstanding in (await db.execute(by_status_stmt)).all()
    ]

    by_product_stmt = (
        select(Loan.product, func.count(Loan.id), _sum(Loan.principal_cents))
        .where(*conditions)
        .group_by(Loan.product)
        .order_by(Loan.product)
    )
    by_product = [
        {"key": product, "count": int(count or 0), "total_principal_cents": int(principal or 0)}
        for product, count, principal in (await db.execute(by_product_stmt)).all()
    ]
    return {"overall": overall, "by_status": by_status, "by_product": by_product}


async def loan_history(
    db: AsyncSession,
    filters: LoanFilters,
    *,
    page: int = 1,
    page_size: int = 50,
) -> dict[str, Any]:
    listing = await list_loans(db, filters, page=page, page_size=page_size)
    listing["statistics"] = await loan_statistics(db, filters)
    return listing


async def _issue_disbursement(loan: Loan, actor: User, rail: PaymentRail) -> None:
    reference = f"DSB-{loan.id.hex[:12].upper()}"
    result = await rail.transfer(
        TransferRequest(
            loan_id=loan.id,
            client_id=loan.client_id,
            amount_cents=loan.principal_cents,
            reference=reference,
        )
    )
    now = datetime.now(timezone.utc)
    loan.disbursed_by_id = actor.id
    loan.disbursed_at = now
    loan.disbursement_reference = result.reference
    loan.due_date = add_months(now.date(), loan.term_months)


async def transition_loan(
    db: AsyncSession,
    loan_id: UUID,
    action: WorkflowAction,
    actor: User,
    *,
    notes: str | None = None,
    rail: PaymentRail | None = None,
) -> Loan:
    """Apply a status-changing workflow action after evaluating every guard."""
    context = await load_context(db, loan_id, for_update=True)
    loan = context.loan
    decision = loan_workflow.evaluate(action, role=actor.role, actor_id=actor.id, facts=context.facts)
    if not decision.allowed:
        logger.info(
            "Loan transition refused loan_id=%s action=%s reasons=%s",
            loan.id,
            action.value,
            ",".join(decision.codes),
        )
        await db.rollback()
        decision.raise_for_denial()

    old_snapshot = model_snapshot(loan)
    if action is WorkflowAction.DISBURSE:
        if rail is None:
            raise ValueError("A payment rail is required to disburse")
        try:
            await _issue_disbursement(loan, actor, rail)
        except PaymentRailError:
            await db.rollback()
            raise

    loan.status = loan_workflow.next_status(action, loan.status).value
    if loan_workflow.is_terminal(loan.status):
        loan.closed_at = datetime.now(timezone.utc)
    if action in {WorkflowAction.APPROVE, WorkflowAction.REJECT}:
        decision_value = ApprovalDecision.APPROVED if action is WorkflowAction.APPROVE else ApprovalDecision.REJECTED
        db.add(LoanApproval(loan_id=loan.id, user_id=actor.id, decision=decision_value.value, notes=notes))

    db.add(loan)
    record_audit_log(
        db,
        actor_id=actor.id,
        action=f"loan.{action.value}",
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(loan),
    )
    await db.commit()
    await db.refresh(loan)
    logger.info("Loan transition applied loan_id=%s action=%s status=%s", loan.id, action.value, loan.status)
    return loan


async def mark_fee_paid(db: AsyncSession, loan_id: UUID, actor: User) -> Loan:
    loan = await get_or_404(db, Loan, loan_id, label="Loan", for_update=True)
    decision = loan_workflow.evaluate(
        WorkflowAction.MARK_FEE_PAID,
        role=actor.role,
        actor_id=actor.id,
        facts=WorkflowFacts.from_loan(loan),
    )
    if not decision.allowed:
        logger.info("Fee marking refused loan_id=%s reasons=%s", loan.id, ",".join(decision.codes))
        await db.rollback()
        decision.raise_for_denial()
    old_snapshot = model_snapshot(loan)
    loan.application_fee_paid = True
    db.add(loan)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="loan.mark_fee_paid",
        resource_type="loan",
        resource_id=str(loan.id),
        old_value=old_snapshot,
        new_value=model_snapshot(loan),
    )
    await db.commit()
    await db.refresh(loan)
    return loan


async def mark_fee_paid_bulk(
    db: AsyncSession,
    loan_ids: list[UUID],
    actor: User,
) -> tuple[list[UUID], dict[str, str]]:
    """Mark every eligible loan; ineligible or unknown ids are reported, not raised."""
    unique_ids = list(dict.fromkeys(loan_ids))
    stmt = select(Loan).where(Loan.id.in_(unique_ids)).with_for_update()
    found = {loan.id: loan for loan in (await db.execute(stmt)).scalars().all()}

    updated: list[UUID] = []
    skipped: dict[str, str] = {}
    for loan_id in unique_ids:
        loan = found.get(loan_id)
        if loan is None:
            skipped[str(loan_id)] = "Loan not found"
            continue
        decision = loan_workflow.evaluate(
            WorkflowAction.MARK_FEE_PAID,
            role=actor.role,
            actor_id=actor.id,
            facts=WorkflowFacts.from_loan(loan),
        )
        if not decision.allowed:
            skipped[str(loan_id)] = decision.message
            continue
        loan.application_fee_paid = True
        db.add(loan)
        updated.append(loan.id)

    if updated:
        record_audit_log(
            db,
            actor_id=actor.id,
            action="loan.mark_fee_paid_bulk",
            resource_type="loan",
            resource_id="bulk",
            new_value={"loan_ids": [str(loan_id) for loan_id in updated]},
        )
        await db.commit()
    else:
        await db.rollback()
    logger.info("Bulk fee update updated=%s skipped=%s", len(updated), len(skipped))
    return updated, skipped
