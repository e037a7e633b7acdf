"""Domain exception hierarchy for the back office."""

from __future__ import annotations

from typing import Any


class DhamiraError(Exception):
    """Base exception for all domain errors; rendered into the error envelope."""

    status_code = 400
    code = "bad_request"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}


class NotFoundError(DhamiraError):
    """Raised when a referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class PermissionDeniedError(DhamiraError):
    """Raised when the actor's role may not perform the action."""

    status_code = 403
    code = "forbidden"


class ValidationFailed(DhamiraError):
    """Raised when input passes schema validation but breaks a business rule."""

    status_code = 400
    code = "validation_failed"


class ConflictError(DhamiraError):
    """Raised on duplicates and concurrent modification."""

    status_code = 409
    code = "conflict"


class WorkflowError(DhamiraError):
    """Raised when a loan transition is refused by the workflow guards."""

    status_code = 409
    code = "workflow_violation"


class PaymentRailError(DhamiraError):
    """Raised when the disbursement rail rejects or fails a transfer."""

    status_code = 502
    code = "payment_rail_error"
