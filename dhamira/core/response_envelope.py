"""Wrap successful JSON responses as ``{code, message, data, details}``.

Error responses are already enveloped by the exception handlers in
``dhamira.core.errors``; this middleware covers the 2xx side so clients see one
shape for every answer from ``/api``.
"""

from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

SUCCESS_CODES = {200: "ok", 201: "created", 202: "accepted"}
ENVELOPE_KEYS = frozenset({"code", "message", "data", "details"})


def build_success_envelope(data: Any, status_code: int = 200) -> dict[str, Any]:
    try:
        message = HTTPStatus(status_code).phrase
    except ValueError:
        message = "Success"
    return {
        "code": SUCCESS_CODES.get(status_code, "ok"),
        "message": message,
        "data": data,
        "details": {},
    }


def _already_enveloped(payload: Any) -> bool:
    return isinstance(payload, dict) and ENVELOPE_KEYS.issubset(payload)


def _rebuild(original: Response, content: Any, status_code: int) -> JSONResponse:
    rebuilt = JSONResponse(status_code=status_code, content=content)
    for key, value in original.headers.items():
        if key.lower() not in {"content-length", "content-type"}:
            rebuilt.headers[key] = value
    return rebuilt


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, prefix: str = "/api") -> None:
        super().__init__(app)
        self.prefix = prefix

    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if not request.url.path.startswith(self.prefix) or not 200 <= response.status_code < 300:
            return response

        # 204 becomes 200 with a null payload so every success carries a body.
        if response.status_code == 204:
            return _rebuild(response, build_success_envelope(None, 200), 200)

        media_type = response.headers.get("content-type", "").split(";")[0].strip()
        if media_type != "application/json":
            return response

        chunks = [chunk if isinstance(chunk, bytes) else chunk.encode("utf-8") async for chunk in response.body_iterator]
        raw = b"".join(chunks)
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            return Response(content=raw, status_code=response.status_code, headers=dict(response.headers))

        if _already_enveloped(payload):
            return _rebuild(response, payload, response.status_code)
        return _rebuild(response, build_success_envelope(payload, response.status_code), response.status_code)


def register_response_envelope(app, prefix: str = "/api") -> None:
    app.add_middleware(ResponseEnvelopeMiddleware, prefix=prefix)
