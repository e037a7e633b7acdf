from __future__ import annotations

import logging
from typing import Any

import httpx

from dhamira.sdk.session import Session

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response; ``message`` is the server's message verbatim."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "code" in payload and "message" in payload and "data" in payload:
        return payload["data"]
    return payload


def _error_from_response(response: httpx.Response) -> ApiError:
    code = None
    details: dict[str, Any] = {}
    message = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or message
        code = body.get("code")
        if isinstance(body.get("details"), dict):
            details = body["details"]
    return ApiError(message, status_code=response.status_code, code=code, details=details)


class ApiClient:
    """Thin JSON client for the back-office API.

    Every request carries the session's bearer token. A 401 invalidates the
    session before the error is raised.
    """

    def __init__(
        self,
        base_url: str,
        session: Session,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._client.request(
            method,
            path,
            json=json,
            params=params,
            headers=self.session.authorization_header(),
        )
        if response.status_code == 401:
            self.session.invalidate()
            raise _error_from_response(response)
        if response.is_error:
            error = _error_from_response(response)
            logger.info("API error method=%s path=%s status=%s code=%s", method, path, error.status_code, error.code)
            raise error
        if not response.content:
            return None
        return _unwrap(response.json())

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post_json(self, path: str, body: Any) -> Any:
        return await self._request("POST", path, json=body)

    async def put_json(self, path: str, body: Any) -> Any:
        return await self._request("PUT", path, json=body)

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    async def refresh_session(self) -> Session:
        """Reload the signed-in user and their permitted actions."""
        payload = await self.get("/api/session")
        self.session.update(payload or {})
        return self.session
