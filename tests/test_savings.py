from uuid import uuid4

from conftest import FakeResult, entity_handler, make_client

from dhamira.core.permissions import Role
from dhamira.models.client import Client
from dhamira.models.savings_transaction import SavingsTransaction


def test_deduction_cannot_overdraw(client, fake_db, login):
    login(Role.SUPER_ADMIN)
    member = make_client(savings_balance_cents=5_000)
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=member)))

    resp = client.post("/api/savings", json={"client_id": str(member.id), "amount_cents": -6_000})

    assert resp.status_code == 400
    assert resp.json()["code"] == "insufficient_savings"
    assert member.savings_balance_cents == 5_000
    assert fake_db.added_of(SavingsTransaction) == []


def test_deduction_to_exactly_zero(client, fake_db, login):
    login(Role.APPROVER_ADMIN)
    member = make_client(savings_balance_cents=5_000)
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=member)))

    resp = client.post("/api/savings", json={"client_id": str(member.id), "amount_cents": -5_000, "notes": "Refund"})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["balance_after_cents"] == 0
    assert data["source"] == "adjustment"
    assert member.savings_balance_cents == 0


def test_zero_adjustment_is_a_validation_error(client, login):
    login(Role.SUPER_ADMIN)

    resp = client.post("/api/savings", json={"client_id": str(uuid4()), "amount_cents": 0})

    assert resp.status_code == 422


def test_loan_officer_cannot_adjust(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.post("/api/savings", json={"client_id": str(uuid4()), "amount_cents": 100})

    assert resp.status_code == 403


def test_loan_officer_records_deposit(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    group_id = uuid4()
    member = make_client(savings_balance_cents=1_000, group_id=group_id)
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=member)))

    resp = client.post(f"/api/clients/{member.id}/savings", json={"amount_cents": 2_500})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["balance_after_cents"] == 3_500
    assert data["source"] == "deposit"
    assert data["group_id"] == str(group_id)
