from uuid import uuid4

from conftest import FakeResult, entity_handler, make_client, make_guarantor, make_loan

from dhamira.core.permissions import Role
from dhamira.models.audit_log import AuditLog
from dhamira.models.client import Client
from dhamira.models.guarantor import Guarantor
from dhamira.models.loan import Loan

_DOCS = {
    "id_copy_url": "https://files.example.com/id.jpg",
    "photo_url": "https://files.example.com/photo.jpg",
}


def test_add_non_member_guarantor(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    fake_db.on_execute(entity_handler(Guarantor, FakeResult(items=[])))

    resp = client.post(
        "/api/guarantors",
        json={"loan_id": str(loan.id), "name": " Otieno ", "national_id": "88776655", **_DOCS},
    )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["name"] == "Otieno"
    assert data["status"] == "pending"
    assert data["is_member"] is False
    assert [entry.action for entry in fake_db.added_of(AuditLog)] == ["guarantor.added"]


def test_member_guarantor_copies_client_identity(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    member = make_client(name="Njeri Mwangi", national_id="12121212", phone="0722000000")
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    fake_db.on_execute(entity_handler(Client, FakeResult(scalar=member)))
    fake_db.on_execute(entity_handler(Guarantor, FakeResult(items=[])))

    resp = client.post("/api/guarantors", json={"loan_id": str(loan.id), "client_id": str(member.id), **_DOCS})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["name"] == "Njeri Mwangi"
    assert data["national_id"] == "12121212"
    assert data["is_member"] is True


def test_borrower_cannot_guarantee_own_loan(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post("/api/guarantors", json={"loan_id": str(loan.id), "client_id": str(loan.client_id), **_DOCS})

    assert resp.status_code == 400
    assert resp.json()["message"] == "The borrower cannot guarantee their own loan"


def test_duplicate_guarantor_is_a_conflict(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    existing = make_guarantor(loan=loan, national_id="55554444")
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    fake_db.on_execute(entity_handler(Guarantor, FakeResult(items=[existing])))

    resp = client.post(
        "/api/guarantors",
        json={"loan_id": str(loan.id), "name": "Again", "national_id": "55554444", **_DOCS},
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "duplicate_guarantor"


def test_guarantor_documents_are_required(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.post("/api/guarantors", json={"loan_id": str(uuid4()), "name": "A", "national_id": "1"})

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_guarantors_only_added_while_initiated(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan(status="approved")
    fake_db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    resp = client.post(
        "/api/guarantors",
        json={"loan_id": str(loan.id), "name": "Late", "national_id": "1", **_DOCS},
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"


def test_admin_accepts_then_rejects_guarantor(client, fake_db, login):
    admin = login(Role.INITIATOR_ADMIN)
    guarantor = make_guarantor()
    fake_db.on_execute(entity_handler(Guarantor, FakeResult(scalar=guarantor)))

    accepted = client.put(f"/api/guarantors/{guarantor.id}/accept")
    rejected = client.put(f"/api/guarantors/{guarantor.id}/reject")

    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "accepted"
    assert rejected.status_code == 200
    assert rejected.json()["data"]["status"] == "rejected"
    assert guarantor.decided_by_id == admin.id


def test_loan_officer_cannot_decide_guarantor(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.put(f"/api/guarantors/{uuid4()}/accept")

    assert resp.status_code == 403


def test_list_guarantors_counts_accepted(client, fake_db, login):
    login(Role.LOAN_OFFICER)
    loan = make_loan()
    items = [
        make_guarantor(loan=loan, status="accepted"),
        make_guarantor(loan=loan, status="pending"),
        make_guarantor(loan=loan, status="rejected"),
    ]
    fake_db.on_execute(entity_handler(Guarantor, FakeResult(items=items)))

    resp = client.get("/api/guarantors", params={"loan_id": str(loan.id)})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 3
    assert data["accepted"] == 1
