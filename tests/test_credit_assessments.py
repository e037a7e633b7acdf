from uuid import uuid4

from conftest import FakeResult, entity_handler, make_assessment, make_loan

from dhamira.core.permissions import Role
from dhamira.models.audit_log import AuditLog
from dhamira.models.credit_assessment import CreditAssessment
from dhamira.models.loan import Loan


def _scores(**overrides):
    scores = {"character": 4, "capacity": 4, "capital": 4, "collateral": 3, "conditions": 4}
    scores.update(overrides)
    return scores


def test_admin_records_passing_assessment(client, fake_db, login):
    admin = login(Role.INITIATOR_ADMIN)
    loan = make_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post("/api/credit-assessments", json={"loan_id": str(loan.id), **_scores()})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["total_score"] == 19
    assert data["passed"] is True
    assert data["officer_id"] == str(admin.id)
    assert [entry.action for entry in fake_db.added_of(AuditLog)] == ["loan.assessed"]


def test_below_threshold_assessment_is_stored_as_failed(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan = make_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(
        "/api/credit-assessments",
        json={"loan_id": str(loan.id), **_scores(character=2, capacity=2)},
    )

    assert resp.status_code == 201
    assert resp.json()["data"]["passed"] is False
    assert fake_db.added_of(CreditAssessment)[0].total_score == 15


def test_loan_officer_cannot_assess(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.post("/api/credit-assessments", json={"loan_id": str(uuid4()), **_scores()})

    assert resp.status_code == 403


def test_out_of_range_score_is_a_validation_error(client, login):
    login(Role.SUPER_ADMIN)

    resp = client.post("/api/credit-assessments", json={"loan_id": str(uuid4()), **_scores(capital=6)})

    assert resp.status_code == 422
    assert resp.json()["message"].startswith("capital:")


def test_assessment_only_before_approval(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    loan = make_loan(status="disbursed")
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post("/api/credit-assessments", json={"loan_id": str(loan.id), **_scores()})

    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


def test_latest_assessment_endpoint(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    latest = make_assessment(loan=loan, total_score=21)
    fake_db.on_execute(entity_handler(CreditAssessment, FakeResult(items=[latest])))

    resp = client.get(f"/api/credit-assessments/{loan.id}")

    assert resp.status_code == 200
    assert resp.json()["data"]["total_score"] == 21


def test_latest_assessment_missing_is_404(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.get(f"/api/credit-assessments/{uuid4()}")

    assert resp.status_code == 404
    assert resp.json()["message"] == "No credit assessment recorded for this loan"
