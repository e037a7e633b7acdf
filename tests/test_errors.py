from uuid import uuid4

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from sqlalchemy.orm.exc import StaleDataError

from dhamira.core.errors import register_exception_handlers
from dhamira.core.exceptions import WorkflowError
from dhamira.core.permissions import Role
from dhamira.core.response_envelope import register_response_envelope
from dhamira.main import app


class _Payload(BaseModel):
    amount_cents: int = Field(gt=0)


def _probe_app() -> FastAPI:
    probe = FastAPI()
    register_exception_handlers(probe)
    register_response_envelope(probe, prefix="")

    @probe.get("/ok")
    async def ok() -> dict:
        return {"value": 1}

    @probe.post("/validate")
    async def validate(payload: _Payload) -> dict:
        return payload.model_dump()

    @probe.get("/workflow")
    async def workflow() -> dict:
        raise WorkflowError("Loan is not approved", code="invalid_transition", details={"action": "disburse"})

    @probe.get("/stale")
    async def stale() -> dict:
        raise StaleDataError("version mismatch")

    @probe.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("kaboom")

    return probe


probe_client = TestClient(_probe_app(), raise_server_exceptions=False)


def test_success_is_wrapped():
    body = probe_client.get("/ok").json()
    assert body == {"code": "ok", "message": "OK", "data": {"value": 1}, "details": {}}


def test_validation_error_names_the_field():
    resp = probe_client.post("/validate", json={"amount_cents": 0})

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "validation_error"
    assert body["message"].startswith("amount_cents: ")
    assert body["data"] is None


def test_domain_error_envelope():
    resp = probe_client.get("/workflow")

    assert resp.status_code == 409
    assert resp.json() == {
        "code": "invalid_transition",
        "message": "Loan is not approved",
        "data": None,
        "details": {"action": "disburse"},
    }


def test_stale_data_is_a_conflict():
    resp = probe_client.get("/stale")

    assert resp.status_code == 409
    assert resp.json()["code"] == "concurrent_modification"


def test_unhandled_error_hides_internals():
    resp = probe_client.get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "internal_server_error"
    assert "kaboom" not in resp.text


def test_unknown_route_is_not_found():
    resp = probe_client.get("/missing")

    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_missing_token_is_unauthorized():
    resp = TestClient(app).get("/api/session")

    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"
    assert resp.headers["www-authenticate"] == "Bearer"


def test_role_refusal_lists_allowed_roles(client, login):
    login(Role.LOAN_OFFICER)

    resp = client.put(f"/api/loans/{uuid4()}/approve", json={})

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "role_not_permitted"
    assert body["details"] == {"action": "loan.approve", "allowed_roles": ["approver_admin"]}
