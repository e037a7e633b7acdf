from conftest import FakeResult, entity_handler, make_loan

from dhamira.core.permissions import Role
from dhamira.models.loan import Loan
from dhamira.models.repayment import Repayment


def _disbursed_loan(**overrides):
    values = dict(status="disbursed", total_due_cents=110_000, outstanding_cents=110_000, total_paid_cents=0)
    values.update(overrides)
    return make_loan(**values)


def test_partial_repayment_reduces_outstanding(client, fake_db, login):
    officer = login(Role.LOAN_OFFICER)
    loan = _disbursed_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(f"/api/loans/{loan.id}/repayments", json={"amount_cents": 40_000, "method": "mpesa"})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["total_paid_cents"] == 40_000
    assert data["outstanding_cents"] == 70_000
    assert data["items"][0]["method"] == "mpesa"
    assert loan.status == "disbursed"
    assert fake_db.added_of(Repayment)[0].recorded_by_id == officer.id


def test_final_repayment_closes_loan(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    loan = _disbursed_loan(total_paid_cents=100_000, outstanding_cents=10_000)
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(f"/api/loans/{loan.id}/repayments", json={"amount_cents": 10_000})

    assert resp.status_code == 201
    assert resp.json()["data"]["outstanding_cents"] == 0
    assert loan.status == "repaid"
    assert loan.closed_at is not None


def test_overpayment_is_refused(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = _disbursed_loan(outstanding_cents=5_000, total_paid_cents=105_000)
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(f"/api/loans/{loan.id}/repayments", json={"amount_cents": 6_000})

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "overpayment"
    assert body["details"] == {"outstanding_cents": 5_000}
    assert not fake_db.committed


def test_repayment_requires_disbursed_loan(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan(status="approved")
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(f"/api/loans/{loan.id}/repayments", json={"amount_cents": 1_000})

    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


def test_zero_amount_is_a_validation_error(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.post(f"/api/loans/{make_loan().id}/repayments", json={"amount_cents": 0})

    assert resp.status_code == 422


def test_list_repayments(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = _disbursed_loan(total_paid_cents=40_000, outstanding_cents=70_000)
    payment = Repayment(loan_id=loan.id, amount_cents=40_000, method="cash")
    fake_db.add(payment)
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    fake_db.on_execute(entity_handler(Repayment, FakeResult(items=[payment])))

    resp = client.get(f"/api/loans/{loan.id}/repayments")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 1
    assert data["outstanding_cents"] == 70_000
