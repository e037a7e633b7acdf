from __future__ import annotations

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Union

from dhamira.core import permissions
from dhamira.core.permissions import Action
from dhamira.schemas.common import LoanStatus, LoanType
from dhamira.sdk.api import ApiClient
from dhamira.services import credit_scoring, loan_workflow
from dhamira.services.credit_scoring import ScoreResult
from dhamira.services.loan_workflow import Decision, WorkflowAction, WorkflowFacts

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[ScoreResult], Union[bool, Awaitable[bool]]]


class TransitionBlocked(Exception):
    """Raised when local gating refuses an action; no request was sent."""

    def __init__(self, decision: Decision) -> None:
        super().__init__(decision.message)
        self.decision = decision


class TransitionInFlight(Exception):
    """Raised when a transition for the same loan is already running."""


_ENDPOINTS: dict[WorkflowAction, tuple[str, str]] = {
    WorkflowAction.APPROVE: ("PUT", "approve"),
    WorkflowAction.REJECT: ("PUT", "reject"),
    WorkflowAction.DISBURSE: ("POST", "disburse"),
    WorkflowAction.CANCEL: ("PUT", "cancel"),
    WorkflowAction.MARK_DEFAULT: ("PUT", "default"),
    WorkflowAction.MARK_FEE_PAID: ("PUT", "mark-application-fee-paid"),
}


class LoanWorkflowClient:
    """Gate locally, send one request, then re-fetch the loan.

    Local gating mirrors the server guards so blocked actions never reach the
    network; the server stays authoritative for everything that is sent.
    """

    def __init__(self, api: ApiClient, *, confirm: ConfirmCallback | None = None) -> None:
        self.api = api
        self.confirm = confirm
        self._in_flight: set[str] = set()

    @property
    def session(self):
        return self.api.session

    def in_flight(self, loan_id: str) -> bool:
        return str(loan_id) in self._in_flight

    @asynccontextmanager
    async def _exclusive(self, loan_id: str) -> AsyncIterator[None]:
        key = str(loan_id)
        if key in self._in_flight:
            raise TransitionInFlight(f"A transition for loan {key} is already in progress")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    async def get_loan(self, loan_id: str) -> dict[str, Any]:
        return await self.api.get(f"/api/loans/{loan_id}")

    def decide(self, action: WorkflowAction | str, detail: dict[str, Any]) -> Decision:
        return loan_workflow.evaluate(
            action,
            role=self.session.role,
            actor_id=self.session.user_id,
            facts=WorkflowFacts.from_detail(detail),
        )

    def available_actions(self, detail: dict[str, Any]) -> list[str]:
        return loan_workflow.available_actions(
            role=self.session.role,
            actor_id=self.session.user_id,
            facts=WorkflowFacts.from_detail(detail),
        )

    async def initiate(self, payload: dict[str, Any]) -> dict[str, Any]:
        loan_type = LoanType.GROUP if payload.get("group_id") else LoanType.INDIVIDUAL
        decision = loan_workflow.check_initiation(
            role=self.session.role,
            loan_type=loan_type,
            guarantors=payload.get("guarantors") or [],
        )
        if not decision.allowed:
            raise TransitionBlocked(decision)
        created = await self.api.post_json("/api/loans/initiate", payload)
        return await self.get_loan(created["loan"]["id"])

    async def _confirmed(self, result: ScoreResult) -> bool:
        if result.passed:
            return True
        if self.confirm is None:
            return False
        answer = self.confirm(result)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def assess(
        self,
        loan_id: str,
        *,
        character: int,
        capacity: int,
        capital: int,
        collateral: int,
        conditions: int,
        officer_notes: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Record an assessment; returns None when a low score is not confirmed."""
        async with self._exclusive(loan_id):
            detail = detail or await self.get_loan(loan_id)
            decision = self.decide(WorkflowAction.ASSESS, detail)
            if not decision.allowed:
                raise TransitionBlocked(decision)
            result = credit_scoring.score(character, capacity, capital, collateral, conditions)
            if not await self._confirmed(result):
                logger.info("Assessment below threshold not confirmed loan_id=%s total=%s", loan_id, result.total_score)
                return None
            await self.api.post_json(
                "/api/credit-assessments",
                {
                    "loan_id": str(loan_id),
                    "character": character,
                    "capacity": capacity,
                    "capital": capital,
                    "collateral": collateral,
                    "conditions": conditions,
                    "officer_notes": officer_notes,
                },
            )
            return await self.get_loan(loan_id)

    async def add_guarantor(
        self,
        loan_id: str,
        guarantor: dict[str, Any],
        *,
        detail: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._exclusive(loan_id):
            detail = detail or await self.get_loan(loan_id)
            if not permissions.is_allowed(self.session.role, Action.GUARANTOR_ADD):
                raise TransitionBlocked(
                    loan_workflow.Decision(
                        action=WorkflowAction.INITIATE,
                        allowed=False,
                        reasons=(
                            loan_workflow.Reason(
                                code=loan_workflow.ReasonCode.ROLE_NOT_PERMITTED,
                                message="Your role is not permitted to add guarantors",
                            ),
                        ),
                    )
                )
            status = LoanStatus(detail["loan"]["status"])
            if status is not LoanStatus.INITIATED:
                raise TransitionBlocked(
                    loan_workflow.Decision(
                        action=WorkflowAction.INITIATE,
                        allowed=False,
                        reasons=(
                            loan_workflow.Reason(
                                code=loan_workflow.ReasonCode.INVALID_TRANSITION,
                                message=f"Guarantors can only be added while the loan is initiated (status '{status.value}')",
                            ),
                        ),
                    )
                )
            await self.api.post_json("/api/guarantors", {**guarantor, "loan_id": str(loan_id)})
            return await self.get_loan(loan_id)

    async def _transition(
        self,
        action: WorkflowAction,
        loan_id: str,
        *,
        detail: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._exclusive(loan_id):
            detail = detail or await self.get_loan(loan_id)
            decision = self.decide(action, detail)
            if not decision.allowed:
                raise TransitionBlocked(decision)
            method, suffix = _ENDPOINTS[action]
            path = f"/api/loans/{loan_id}/{suffix}"
            if method == "POST":
                await self.api.post_json(path, body or {})
            else:
                await self.api.put_json(path, body or {})
            return await self.get_loan(loan_id)

    async def approve(self, loan_id: str, *, notes: str | None = None, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.APPROVE, loan_id, detail=detail, body={"notes": notes})

    async def reject(self, loan_id: str, *, notes: str | None = None, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.REJECT, loan_id, detail=detail, body={"notes": notes})

    async def disburse(self, loan_id: str, *, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.DISBURSE, loan_id, detail=detail)

    async def cancel(self, loan_id: str, *, notes: str | None = None, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.CANCEL, loan_id, detail=detail, body={"notes": notes})

    async def mark_default(self, loan_id: str, *, notes: str | None = None, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.MARK_DEFAULT, loan_id, detail=detail, body={"notes": notes})

    async def mark_fee_paid(self, loan_id: str, *, detail: dict[str, Any] | None = None):
        return await self._transition(WorkflowAction.MARK_FEE_PAID, loan_id, detail=detail)
