"""Loan lifecycle state machine.

Holds the transition table and guard evaluation shared by the API routers and
the client SDK. Nothing here touches the database: callers collect the guard
inputs into ``WorkflowFacts`` and ask ``evaluate`` for a ``Decision``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping
from uuid import UUID

from dhamira.core import permissions
from dhamira.core.exceptions import PermissionDeniedError, WorkflowError
from dhamira.core.permissions import Action, Role
from dhamira.core.settings import settings
from dhamira.schemas.common import LoanStatus, LoanType


class WorkflowAction(str, Enum):
    INITIATE = "initiate"
    ASSESS = "assess"
    APPROVE = "approve"
    REJECT = "reject"
    DISBURSE = "disburse"
    REPAY = "repay"
    CANCEL = "cancel"
    MARK_DEFAULT = "mark_default"
    MARK_FEE_PAID = "mark_fee_paid"


class ReasonCode(str, Enum):
    ROLE_NOT_PERMITTED = "role_not_permitted"
    INVALID_TRANSITION = "invalid_transition"
    MAKER_CHECKER = "maker_checker"
    ASSESSMENT_REQUIRED = "assessment_required"
    GUARANTOR_REQUIRED = "guarantor_required"
    OUTSTANDING_BALANCE_ZERO = "outstanding_balance_zero"
    FEE_ALREADY_PAID = "fee_already_paid"


@dataclass(frozen=True, slots=True)
class Transition:
    action: WorkflowAction
    permission: Action
    sources: frozenset[LoanStatus]
    # None keeps the current status
    target: LoanStatus | None = None
    maker_checker: bool = False
    requires_assessment: bool = False
    requires_accepted_guarantor: bool = False
    requires_outstanding: bool = False
    requires_unpaid_fee: bool = False


TRANSITIONS: dict[WorkflowAction, Transition] = {
    WorkflowAction.ASSESS: Transition(
        action=WorkflowAction.ASSESS,
        permission=Action.LOAN_ASSESS,
        sources=frozenset({LoanStatus.INITIATED}),
    ),
    WorkflowAction.APPROVE: Transition(
        action=WorkflowAction.APPROVE,
        permission=Action.LOAN_APPROVE,
        sources=frozenset({LoanStatus.INITIATED}),
        target=LoanStatus.APPROVED,
        maker_checker=True,
        requires_assessment=True,
        requires_accepted_guarantor=True,
    ),
    WorkflowAction.REJECT: Transition(
        action=WorkflowAction.REJECT,
        permission=Action.LOAN_REJECT,
        sources=frozenset({LoanStatus.INITIATED}),
        target=LoanStatus.REJECTED,
        maker_checker=True,
    ),
    WorkflowAction.DISBURSE: Transition(
        action=WorkflowAction.DISBURSE,
        permission=Action.LOAN_DISBURSE,
        sources=frozenset({LoanStatus.APPROVED}),
        target=LoanStatus.DISBURSED,
        maker_checker=True,
        requires_assessment=True,
        requires_accepted_guarantor=True,
    ),
    WorkflowAction.REPAY: Transition(
        action=WorkflowAction.REPAY,
        permission=Action.LOAN_REPAY,
        sources=frozenset({LoanStatus.DISBURSED}),
        requires_outstanding=True,
    ),
    WorkflowAction.CANCEL: Transition(
        action=WorkflowAction.CANCEL,
        permission=Action.LOAN_CANCEL,
        sources=frozenset({LoanStatus.INITIATED, LoanStatus.APPROVED}),
        target=LoanStatus.CANCELLED,
        maker_checker=True,
    ),
    WorkflowAction.MARK_DEFAULT: Transition(
        action=WorkflowAction.MARK_DEFAULT,
        permission=Action.LOAN_MARK_DEFAULT,
        sources=frozenset({LoanStatus.DISBURSED}),
        target=LoanStatus.DEFAULTED,
        requires_outstanding=True,
    ),
    WorkflowAction.MARK_FEE_PAID: Transition(
        action=WorkflowAction.MARK_FEE_PAID,
        permission=Action.LOAN_MARK_FEE_PAID,
        sources=frozenset({LoanStatus.INITIATED}),
        requires_unpaid_fee=True,
    ),
}


_REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.ROLE_NOT_PERMITTED: "Your role is not permitted to {action} loans",
    ReasonCode.INVALID_TRANSITION: "Cannot {action} a loan with status '{status}'",
    ReasonCode.MAKER_CHECKER: "The user who initiated a loan cannot {action} it",
    ReasonCode.ASSESSMENT_REQUIRED: "A credit assessment is required before you can {action} this loan",
    ReasonCode.GUARANTOR_REQUIRED: "At least {count} accepted guarantor(s) are required to {action} this loan",
    ReasonCode.OUTSTANDING_BALANCE_ZERO: "The loan has no outstanding balance",
    ReasonCode.FEE_ALREADY_PAID: "The application fee has already been marked as paid",
}


@dataclass(frozen=True, slots=True)
class Reason:
    code: ReasonCode
    message: str


@dataclass(frozen=True, slots=True)
class Decision:
    action: WorkflowAction
    allowed: bool
    reasons: tuple[Reason, ...] = ()

    def __bool__(self) -> bool:
        return self.allowed

    @property
    def codes(self) -> list[str]:
        return [reason.code.value for reason in self.reasons]

    @property
    def message(self) -> str:
        if self.allowed:
            return "Allowed"
        return self.reasons[0].message

    def raise_for_denial(self) -> None:
        """Raise the domain error matching the first failing guard."""
        if self.allowed:
            return
        first = self.reasons[0].code
        details = {"action": self.action.value, "reasons": self.codes}
        if first is ReasonCode.ROLE_NOT_PERMITTED:
            raise PermissionDeniedError(self.message, code=first.value, details=details)
        if first in {ReasonCode.ASSESSMENT_REQUIRED, ReasonCode.GUARANTOR_REQUIRED}:
            raise WorkflowError(self.message, code=first.value, details=details, status_code=400)
        raise WorkflowError(self.message, code=first.value, details=details)


@dataclass(frozen=True, slots=True)
class WorkflowFacts:
    """Guard inputs for one loan, gathered by the caller."""

    status: LoanStatus
    initiated_by_id: str | None = None
    has_assessment: bool = False
    accepted_guarantors: int = 0
    outstanding_cents: int = 0
    application_fee_paid: bool = False

    @classmethod
    def from_loan(
        cls,
        loan: Any,
        *,
        has_assessment: bool = False,
        accepted_guarantors: int = 0,
    ) -> "WorkflowFacts":
        return cls(
            status=LoanStatus(loan.status),
            initiated_by_id=_as_id(loan.initiated_by_id),
            has_assessment=has_assessment,
            accepted_guarantors=accepted_guarantors,
            outstanding_cents=int(loan.outstanding_cents or 0),
            application_fee_paid=bool(loan.application_fee_paid),
        )

    @classmethod
    def from_detail(cls, detail: Mapping[str, Any]) -> "WorkflowFacts":
        """Build facts from a loan detail payload as returned by the API."""
        loan = detail["loan"]
        return cls(
            status=LoanStatus(loan["status"]),
            initiated_by_id=_as_id(loan.get("initiated_by_id")),
            has_assessment=detail.get("assessment") is not None,
            accepted_guarantors=int(detail.get("accepted_guarantors") or 0),
            outstanding_cents=int(loan.get("outstanding_cents") or 0),
            application_fee_paid=bool(loan.get("application_fee_paid")),
        )


def _as_id(value: str | UUID | None) -> str | None:
    if value is None:
        return None
    return str(value)


def _reason(code: ReasonCode, action: WorkflowAction, **extra: Any) -> Reason:
    label = action.value.replace("_", " ")
    return Reason(code=code, message=_REASON_MESSAGES[code].format(action=label, **extra))


def evaluate(
    action: WorkflowAction | str,
    *,
    role: Role | str | None,
    actor_id: str | UUID | None,
    facts: WorkflowFacts,
    min_accepted_guarantors: int | None = None,
) -> Decision:
    """Check every guard of ``action`` and report all failing reasons."""
    action = WorkflowAction(action)
    if action is WorkflowAction.INITIATE:
        raise ValueError("Use check_initiation for new loans")
    transition = TRANSITIONS[action]
    required_guarantors = (
        settings.min_accepted_guarantors if min_accepted_guarantors is None else min_accepted_guarantors
    )

    reasons: list[Reason] = []
    if not permissions.is_allowed(role, transition.permission):
        reasons.append(_reason(ReasonCode.ROLE_NOT_PERMITTED, action))
    if facts.status not in transition.sources:
        reasons.append(_reason(ReasonCode.INVALID_TRANSITION, action, status=facts.status.value))
    if transition.maker_checker and facts.initiated_by_id is not None:
        if _as_id(actor_id) == facts.initiated_by_id:
            reasons.append(_reason(ReasonCode.MAKER_CHECKER, action))
    if transition.requires_assessment and not facts.has_assessment:
        reasons.append(_reason(ReasonCode.ASSESSMENT_REQUIRED, action))
    if transition.requires_accepted_guarantor and facts.accepted_guarantors < required_guarantors:
        reasons.append(_reason(ReasonCode.GUARANTOR_REQUIRED, action, count=required_guarantors))
    if transition.requires_outstanding and facts.outstanding_cents <= 0:
        reasons.append(_reason(ReasonCode.OUTSTANDING_BALANCE_ZERO, action))
    if transition.requires_unpaid_fee and facts.application_fee_paid:
        reasons.append(_reason(ReasonCode.FEE_ALREADY_PAID, action))

    return Decision(action=action, allowed=not reasons, reasons=tuple(reasons))


def available_actions(
    *,
    role: Role | str | None,
    actor_id: str | UUID | None,
    facts: WorkflowFacts,
    min_accepted_guarantors: int | None = None,
) -> list[str]:
    return [
        action.value
        for action in TRANSITIONS
        if evaluate(
            action,
            role=role,
            actor_id=actor_id,
            facts=facts,
            min_accepted_guarantors=min_accepted_guarantors,
        ).allowed
    ]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def complete_guarantors(guarantors: Iterable[Any]) -> int:
    """Count guarantors carrying both a non-empty name and national id."""
    count = 0
    for guarantor in guarantors:
        name = (_field(guarantor, "name") or "").strip()
        national_id = (_field(guarantor, "national_id") or "").strip()
        if name and national_id:
            count += 1
    return count


def check_initiation(
    *,
    role: Role | str | None,
    loan_type: LoanType | str,
    guarantors: Iterable[Any] = (),
    min_guarantors: int | None = None,
) -> Decision:
    action = WorkflowAction.INITIATE
    required = settings.min_initiation_guarantors if min_guarantors is None else min_guarantors
    reasons: list[Reason] = []
    if not permissions.is_allowed(role, Action.LOAN_INITIATE):
        reasons.append(_reason(ReasonCode.ROLE_NOT_PERMITTED, action))
    if LoanType(loan_type) is LoanType.INDIVIDUAL and complete_guarantors(guarantors) < required:
        reasons.append(
            Reason(
                code=ReasonCode.GUARANTOR_REQUIRED,
                message=f"Individual loans require at least {required} guarantors with name and national id",
            )
        )
    return Decision(action=action, allowed=not reasons, reasons=tuple(reasons))


def next_status(action: WorkflowAction | str, current: LoanStatus | str) -> LoanStatus:
    """Status the loan ends in after ``action``; unchanged for status-neutral actions."""
    transition = TRANSITIONS[WorkflowAction(action)]
    return transition.target or LoanStatus(current)


def is_terminal(status: LoanStatus | str) -> bool:
    return LoanStatus(status) in LoanStatus.terminal()
