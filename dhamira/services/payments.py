from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx

from dhamira.core.exceptions import PaymentRailError
from dhamira.core.settings import settings

logger = logging.getLogger(__name__)

CURRENCY = "KES"


@dataclass(frozen=True, slots=True)
class TransferRequest:
    loan_id: UUID
    client_id: UUID
    amount_cents: int
    reference: str
    currency: str = CURRENCY


@dataclass(frozen=True, slots=True)
class TransferResult:
    reference: str
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentRail(Protocol):
    name: str

    async def transfer(self, request: TransferRequest) -> TransferResult: ...


class NoopPaymentRail:
    """Accepts every transfer without moving funds; used in development."""

    name = "noop"

    async def transfer(self, request: TransferRequest) -> TransferResult:
        logger.info(
            "Noop disbursement loan_id=%s amount_cents=%s reference=%s",
            request.loan_id,
            request.amount_cents,
            request.reference,
        )
        return TransferResult(reference=request.reference, status="accepted")


class HttpPaymentRail:
    name = "http"

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self, request: TransferRequest) -> dict[str, str]:
        headers = {"Idempotency-Key": request.reference}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def transfer(self, request: TransferRequest) -> TransferResult:
        payload = {
            "loan_id": str(request.loan_id),
            "client_id": str(request.client_id),
            "amount_cents": request.amount_cents,
            "currency": request.currency,
            "reference": request.reference,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=self._headers(request))
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Payment rail rejected transfer reference=%s status=%s",
                request.reference,
                exc.response.status_code,
            )
            raise PaymentRailError(
                "Payment rail rejected the disbursement",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Payment rail unreachable reference=%s error=%s", request.reference, exc)
            raise PaymentRailError("Payment rail is unavailable") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return TransferResult(
            reference=str(body.get("reference") or request.reference),
            status=str(body.get("status") or "accepted"),
            raw=body,
        )


def get_payment_rail() -> PaymentRail:
    if settings.payment_rail == "http":
        if not settings.payment_rail_url:
            raise PaymentRailError("PAYMENT_RAIL_URL is not configured", status_code=500)
        return HttpPaymentRail(
            settings.payment_rail_url,
            api_key=settings.payment_rail_api_key,
            timeout=settings.payment_rail_timeout_seconds,
        )
    return NoopPaymentRail()
