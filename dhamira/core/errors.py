"""Exception handlers rendering every failure as ``{code, message, data, details}``."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Mapping

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dhamira.core.exceptions import DhamiraError

logger = logging.getLogger(__name__)

STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "unprocessable_entity",
    429: "rate_limited",
    502: "bad_gateway",
}

# Request sections FastAPI prefixes onto validation error locations.
_LOCATION_SECTIONS = {"body", "query", "path", "header"}


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _as_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, Mapping):
        return dict(details)
    if isinstance(details, list):
        return {"errors": details}
    return {"detail": str(details)}


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    *,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    payload = {"code": code, "message": message, "data": None, "details": _as_details(details)}
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload, custom_encoder={Exception: str}),
        headers=dict(headers) if headers else None,
    )


def _from_http_detail(detail: Any, status_code: int) -> tuple[str, str, dict]:
    """Accept plain strings and the ``{code, message, details}`` dicts raised by dependencies."""
    code = STATUS_CODES.get(status_code, "http_error")
    if isinstance(detail, str):
        return code, detail, {"detail": detail}
    if isinstance(detail, Mapping):
        message = detail.get("message") or detail.get("detail") or _phrase(status_code)
        if "details" in detail:
            details = _as_details(detail["details"])
        else:
            details = {k: v for k, v in detail.items() if k not in {"code", "message", "detail"}}
        return detail.get("code") or code, message, details
    return code, _phrase(status_code), _as_details(detail)


def _validation_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Validation failed"
    first = errors[0] or {}
    text = first.get("msg") or "Validation failed"
    location = [str(part) for part in first.get("loc") or () if part not in _LOCATION_SECTIONS]
    return f"{'.'.join(location)}: {text}" if location else str(text)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _from_http_detail(exc.detail, exc.status_code)
    return error_response(exc.status_code, code, message, details, headers=getattr(exc, "headers", None))


async def domain_exception_handler(request: Request, exc: DhamiraError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s %s refused code=%s message=%s", request.method, request.url.path, exc.code, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    return error_response(422, "validation_error", _validation_message(errors), {"errors": errors})


async def stale_data_exception_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.info("Optimistic lock failed on %s %s", request.method, request.url.path)
    return error_response(
        409,
        "concurrent_modification",
        "The record was modified by another request; reload and try again",
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.info("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(409, "duplicate_record", "A record with the same unique value already exists")


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    return error_response(
        429,
        "rate_limited",
        _phrase(429),
        getattr(exc, "detail", None),
        headers=headers if isinstance(headers, dict) else None,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "internal_server_error", "Internal server error")


HANDLERS = (
    (StarletteHTTPException, http_exception_handler),
    (DhamiraError, domain_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (RateLimitExceeded, rate_limit_exception_handler),
    (StaleDataError, stale_data_exception_handler),
    (IntegrityError, integrity_exception_handler),
    (Exception, unhandled_exception_handler),
)


def register_exception_handlers(app) -> None:
    for exc_class, handler in HANDLERS:
        app.add_exception_handler(exc_class, handler)
