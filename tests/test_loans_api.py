from uuid import uuid4

import pytest

from conftest import (
    FakeResult,
    entity_handler,
    make_assessment,
    make_client,
    make_guarantor,
    make_loan,
    sequence_handler,
    serve_loan,
)

from dhamira.core.exceptions import PaymentRailError
from dhamira.core.permissions import Role
from dhamira.main import app
from dhamira.models.audit_log import AuditLog
from dhamira.models.client import Client
from dhamira.models.guarantor import Guarantor
from dhamira.models.loan import Loan
from dhamira.models.loan_approval import LoanApproval
from dhamira.services.payments import TransferResult, get_payment_rail


def _guarantors(count: int) -> list[dict]:
    return [
        {"name": f"Guarantor {i}", "national_id": f"NID-{i}", "phone": "0711000000"}
        for i in range(count)
    ]


def _ready_loan(status="initiated", **overrides):
    loan = make_loan(status=status, **overrides)
    guarantors = [make_guarantor(loan=loan, status="accepted")]
    assessment = make_assessment(loan=loan)
    return loan, guarantors, assessment


class RecordingRail:
    name = "recording"

    def __init__(self) -> None:
        self.requests = []

    async def transfer(self, request):
        self.requests.append(request)
        return TransferResult(reference=f"RAIL-{request.reference}", status="accepted")


class FailingRail:
    name = "failing"

    async def transfer(self, request):
        raise PaymentRailError("Payment rail rejected the disbursement", details={"status_code": 422})


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------


def test_initiate_individual_loan(client, fake_db, login):
    officer = login(Role.LOAN_OFFICER)
    borrower = make_client(status="active")
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[])))

    resp = client.post(
        "/api/loans/initiate",
        json={
            "client_id": str(borrower.id),
            "principal_cents": 2_000_000,
            "term_months": 6,
            "guarantors": _guarantors(3),
        },
    )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["loan"]["status"] == "initiated"
    assert data["loan"]["loan_type"] == "individual"
    assert data["loan"]["initiated_by_id"] == str(officer.id)
    assert data["loan"]["interest_cents"] == 200_000
    assert data["loan"]["outstanding_cents"] == 2_200_000
    assert data["loan"]["cycle"] == 1
    assert data["fees"]["total_due_cents"] == 2_200_000
    assert len(data["guarantors"]) == 3
    assert all(g["status"] == "pending" for g in data["guarantors"])
    assert fake_db.committed
    assert len(fake_db.added_of(Guarantor)) == 3
    assert [entry.action for entry in fake_db.added_of(AuditLog)] == ["loan.initiated"]


def test_initiate_individual_loan_with_two_guarantors_is_refused(client, fake_db, login):
    login(Role.LOAN_OFFICER)

    resp = client.post(
        "/api/loans/initiate",
        json={
            "client_id": str(uuid4()),
            "principal_cents": 2_000_000,
            "term_months": 6,
            "guarantors": _guarantors(2) + [{"name": "No Id", "national_id": ""}],
        },
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "guarantor_required"
    assert body["data"] is None
    assert "at least 3 guarantors" in body["message"]
    assert fake_db.added == []


def test_initiate_is_loan_officer_only(client, login):
    login(Role.SUPER_ADMIN)

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(uuid4()), "principal_cents": 100, "term_months": 1, "guarantors": _guarantors(3)},
    )

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "role_not_permitted"
    assert body["details"]["allowed_roles"] == ["loan_officer"]


def test_initiate_refuses_second_open_loan(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active")
    open_loan = make_loan(client_id=borrower.id, status="disbursed")
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[open_loan])))

    resp = client.post(
        "/api/loans/initiate",
        json={
            "client_id": str(borrower.id),
            "principal_cents": 500_000,
            "term_months": 3,
            "guarantors": _guarantors(3),
        },
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "open_loan_exists"
    assert not fake_db.committed


def test_initiate_requires_active_client(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="pending")
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))

    resp = client.post(
        "/api/loans/initiate",
        json={
            "client_id": str(borrower.id),
            "principal_cents": 500_000,
            "term_months": 3,
            "guarantors": _guarantors(3),
        },
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_failed"


def test_initiate_rejects_borrower_as_guarantor(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active", national_id="BORROWER-1")
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[])))
    guarantors = _guarantors(2) + [{"name": "Self", "national_id": "BORROWER-1"}]

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(borrower.id), "principal_cents": 500_000, "term_months": 3, "guarantors": guarantors},
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "The borrower cannot guarantee their own loan"


def test_initiate_rejects_borrower_as_member_guarantor(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active", national_id="BORROWER-1")
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[])))
    guarantors = _guarantors(2) + [{"name": "Self", "national_id": "OTHER-ID", "client_id": str(borrower.id)}]

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(borrower.id), "principal_cents": 500_000, "term_months": 3, "guarantors": guarantors},
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "The borrower cannot guarantee their own loan"
    assert fake_db.added_of(Guarantor) == []
    assert not fake_db.committed


def test_initiate_member_guarantor_takes_member_identity(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active")
    member = make_client(status="active", name="Achieng Otieno", national_id="MEMBER-9", phone="0722000000")
    fake_db.on_execute(sequence_handler([FakeResult(scalar=borrower), FakeResult(items=[]), FakeResult(scalar=member)]))
    guarantors = _guarantors(2) + [{"name": "Typed Name", "national_id": "TYPED-1", "client_id": str(member.id)}]

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(borrower.id), "principal_cents": 500_000, "term_months": 3, "guarantors": guarantors},
    )

    assert resp.status_code == 201
    stored = fake_db.added_of(Guarantor)[-1]
    assert stored.client_id == member.id
    assert stored.is_member is True
    assert (stored.name, stored.national_id, stored.phone) == ("Achieng Otieno", "MEMBER-9", "0722000000")


def test_initiate_member_guarantor_must_exist(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active")
    fake_db.on_execute(sequence_handler([FakeResult(scalar=borrower), FakeResult(items=[]), FakeResult(scalar=None)]))
    guarantors = _guarantors(2) + [{"name": "Ghost", "national_id": "GHOST-1", "client_id": str(uuid4())}]

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(borrower.id), "principal_cents": 500_000, "term_months": 3, "guarantors": guarantors},
    )

    assert resp.status_code == 404
    assert resp.json()["message"] == "Client not found"


def test_initiate_enforces_savings_requirement(client, fake_db, login, monkeypatch):
    from dhamira.core.settings import settings

    monkeypatch.setattr(settings, "savings_requirement_percent", 20)
    login(Role.LOAN_OFFICER)
    borrower = make_client(status="active", savings_balance_cents=10_000)
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=borrower)))
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[])))

    resp = client.post(
        "/api/loans/initiate",
        json={"client_id": str(borrower.id), "principal_cents": 100_000, "term_months": 3, "guarantors": _guarantors(3)},
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "insufficient_savings"
    assert body["details"] == {"required_cents": 20_000, "balance_cents": 10_000}


# ---------------------------------------------------------------------------
# Approval and rejection
# ---------------------------------------------------------------------------


def test_approver_approves_loan(client, fake_db, login):
    approver = login(Role.APPROVER_ADMIN)
    loan, guarantors, assessment = _ready_loan()
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)

    resp = client.put(f"/api/loans/{loan.id}/approve", json={"notes": "Strong business"})

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "approved"
    approvals = fake_db.added_of(LoanApproval)
    assert len(approvals) == 1
    assert approvals[0].user_id == approver.id
    assert approvals[0].decision == "approved"
    assert approvals[0].notes == "Strong business"
    assert [entry.action for entry in fake_db.added_of(AuditLog)] == ["loan.approve"]
    assert fake_db.committed


def test_maker_cannot_approve(client, fake_db, login):
    approver = login(Role.APPROVER_ADMIN)
    loan, guarantors, assessment = _ready_loan(initiated_by_id=approver.id)
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)

    resp = client.put(f"/api/loans/{loan.id}/approve")

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "maker_checker"
    assert body["message"] == "The user who initiated a loan cannot approve it"
    assert body["details"]["reasons"] == ["maker_checker"]
    assert loan.status == "initiated"
    assert not fake_db.committed


def test_loan_officer_cannot_approve(client, fake_db, login):
    login(Role.LOAN_OFFICER)

    resp = client.put(f"/api/loans/{uuid4()}/approve")

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "role_not_permitted"
    assert body["details"]["action"] == "loan.approve"


def test_approve_requires_assessment(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan, guarantors, _ = _ready_loan()
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=None)

    resp = client.put(f"/api/loans/{loan.id}/approve")

    assert resp.status_code == 400
    assert resp.json()["code"] == "assessment_required"


def test_approve_twice_is_a_conflict(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan, guarantors, assessment = _ready_loan(status="approved")
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)

    resp = client.put(f"/api/loans/{loan.id}/approve")

    assert resp.status_code == 409
    assert resp.json()["message"] == "Cannot approve a loan with status 'approved'"


def test_reject_closes_loan(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan = make_loan()
    serve_loan(fake_db, loan)

    resp = client.put(f"/api/loans/{loan.id}/reject", json={"notes": "Incomplete records"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "rejected"
    assert data["closed_at"] is not None
    assert fake_db.added_of(LoanApproval)[0].decision == "rejected"


def test_unknown_loan_is_404(client, fake_db, login):
    login(Role.APPROVER_ADMIN)

    resp = client.put(f"/api/loans/{uuid4()}/approve")

    assert resp.status_code == 404
    assert resp.json()["message"] == "Loan not found"


# ---------------------------------------------------------------------------
# Disbursement
# ---------------------------------------------------------------------------


def test_disburse_calls_rail_and_sets_due_date(client, fake_db, login):
    admin = login(Role.SUPER_ADMIN)
    loan, guarantors, assessment = _ready_loan(status="approved", term_months=3)
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)
    rail = RecordingRail()
    app.dependency_overrides[get_payment_rail] = lambda: rail

    resp = client.post(f"/api/loans/{loan.id}/disburse")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "disbursed"
    assert data["disbursed_by_id"] == str(admin.id)
    assert data["due_date"] is not None
    assert data["disbursement_reference"] == f"RAIL-DSB-{loan.id.hex[:12].upper()}"
    assert len(rail.requests) == 1
    assert rail.requests[0].amount_cents == loan.principal_cents


def test_disburse_requires_accepted_guarantor(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    loan = make_loan(status="approved")
    pending = make_guarantor(loan=loan, status="pending")
    serve_loan(fake_db, loan, guarantors=[pending], assessment=make_assessment(loan=loan))
    rail = RecordingRail()
    app.dependency_overrides[get_payment_rail] = lambda: rail

    resp = client.post(f"/api/loans/{loan.id}/disburse")

    assert resp.status_code == 400
    assert resp.json()["code"] == "guarantor_required"
    assert rail.requests == []


def test_rail_failure_leaves_loan_approved(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    loan, guarantors, assessment = _ready_loan(status="approved")
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)
    app.dependency_overrides[get_payment_rail] = lambda: FailingRail()

    resp = client.post(f"/api/loans/{loan.id}/disburse")

    assert resp.status_code == 502
    body = resp.json()
    assert body["code"] == "payment_rail_error"
    assert body["details"] == {"status_code": 422}
    assert loan.status == "approved"
    assert fake_db.rolled_back
    assert not fake_db.committed


def test_initiator_admin_cannot_disburse(client, login):
    login(Role.INITIATOR_ADMIN)

    resp = client.post(f"/api/loans/{uuid4()}/disburse")

    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Cancel, default and fees
# ---------------------------------------------------------------------------


def test_cancel_approved_loan(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan = make_loan(status="approved")
    serve_loan(fake_db, loan)

    resp = client.put(f"/api/loans/{loan.id}/cancel")

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"


def test_mark_default_requires_disbursed(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    loan = make_loan(status="approved")
    serve_loan(fake_db, loan)

    resp = client.put(f"/api/loans/{loan.id}/default")

    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


def test_mark_fee_paid_once(client, fake_db, login):
    login(Role.INITIATOR_ADMIN)
    loan = make_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    first = client.put(f"/api/loans/{loan.id}/mark-application-fee-paid")
    second = client.put(f"/api/loans/{loan.id}/mark-application-fee-paid")

    assert first.status_code == 200
    assert first.json()["data"]["application_fee_paid"] is True
    assert second.status_code == 409
    assert second.json()["code"] == "fee_already_paid"


def test_mark_fee_paid_bulk_reports_skipped(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    fresh = make_loan()
    paid = make_loan(application_fee_paid=True)
    missing = uuid4()
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[fresh, paid])))

    resp = client.post(
        "/api/loans/mark-application-fee-paid-bulk",
        json={"loan_ids": [str(fresh.id), str(paid.id), str(missing)]},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["updated"] == [str(fresh.id)]
    assert data["skipped"] == {
        str(paid.id): "The application fee has already been marked as paid",
        str(missing): "Loan not found",
    }
    assert fresh.application_fee_paid is True


def test_refused_fee_marking_releases_the_lock(client, fake_db, login):
    login(Role.INITIATOR_ADMIN)
    loan = make_loan(application_fee_paid=True)
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.put(f"/api/loans/{loan.id}/mark-application-fee-paid")

    assert resp.status_code == 409
    assert fake_db.rolled_back
    assert not fake_db.committed
    assert fake_db.added_of(AuditLog) == []


def test_bulk_fee_marking_with_nothing_eligible_rolls_back(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    paid = make_loan(application_fee_paid=True)
    fake_db.on_execute(entity_handler(Loan, FakeResult(items=[paid])))

    resp = client.post("/api/loans/mark-application-fee-paid-bulk", json={"loan_ids": [str(paid.id)]})

    assert resp.status_code == 200
    assert resp.json()["data"]["updated"] == []
    assert fake_db.rolled_back
    assert not fake_db.committed


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_loan_detail_lists_actions_for_viewer(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan, guarantors, assessment = _ready_loan()
    serve_loan(fake_db, loan, guarantors=guarantors, assessment=assessment)

    resp = client.get(f"/api/loans/{loan.id}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["loan"]["id"] == str(loan.id)
    assert data["accepted_guarantors"] == 1
    assert data["assessment"]["total_score"] == 19
    assert data["progress_percent"] == 0.0
    assert "approve" in data["actions"]
    assert "disburse" not in data["actions"]


def test_loan_officer_list_is_scoped_to_own_loans(client, fake_db, login):
    officer = login(Role.LOAN_OFFICER)
    loan = make_loan(initiated_by_id=officer.id)
    statements = []

    def _capture(stmt):
        statements.append(stmt)
        return None

    fake_db.on_execute(_capture)
    fake_db.on_execute(sequence_handler([FakeResult(scalar=1), FakeResult(items=[loan])]))

    resp = client.get("/api/loans", params={"page_size": 10})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 1
    assert data["total_pages"] == 1
    assert data["items"][0]["id"] == str(loan.id)
    compiled = str(statements[-1])
    assert "initiated_by_id" in compiled


def test_history_is_super_admin_only(client, login):
    login(Role.APPROVER_ADMIN)

    resp = client.get("/api/loans/history")

    assert resp.status_code == 403


def test_history_includes_statistics(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    loan = make_loan(status="disbursed")
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(scalar=1),
                FakeResult(items=[loan]),
                FakeResult(rows=[(1, 1_000_000, 1_100_000, 0, 1_100_000)]),
                FakeResult(rows=[("disbursed", 1, 1_000_000, 1_100_000, 0, 1_100_000)]),
                FakeResult(rows=[("business", 1, 1_000_000)]),
            ]
        )
    )

    resp = client.get("/api/loans/history")

    assert resp.status_code == 200
    stats = resp.json()["data"]["statistics"]
    assert stats["overall"]["total_loans"] == 1
    assert stats["overall"]["total_outstanding_cents"] == 1_100_000
    assert stats["by_status"][0]["key"] == "disbursed"
    assert stats["by_product"][0] == {
        "key": "business",
        "count": 1,
        "total_principal_cents": 1_000_000,
        "total_due_cents": 0,
        "total_paid_cents": 0,
        "total_outstanding_cents": 0,
    }


@pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.INITIATOR_ADMIN, Role.APPROVER_ADMIN])
def test_admins_cannot_use_my_loans(client, login, role):
    login(role)

    resp = client.get("/api/loans/my-loans")

    assert resp.status_code == 403
