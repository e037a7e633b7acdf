"""Logging setup: JSON lines on stdout with request correlation.

Three streams share one output: ``transactional`` (application and access
lines), ``audit`` (one line per recorded audit event, mirrored from the
audit_logs table) and ``payments`` (disbursement rail traffic).
"""

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from dhamira.core import context
from dhamira.core.settings import settings

AUDIT_LOGGER = "dhamira.audit"
PAYMENTS_LOGGER = "dhamira.services.payments"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s %(actor_id)s] %(name)s: %(message)s"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = context.current()
        record.request_id = ctx.request_id
        record.actor_id = ctx.actor_id
        record.actor_role = ctx.actor_role
        return True


class JsonFormatter(logging.Formatter):
    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "stream": self.stream_label,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", context.UNSET),
            "actor": {
                "id": getattr(record, "actor_id", context.UNSET),
                "role": getattr(record, "actor_role", context.UNSET),
            },
        }
        audit = getattr(record, "audit", None)
        if audit:
            payload["audit"] = audit
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _handler(formatter: str, level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def build_logging_config(level: str, *, json_logs: bool = True) -> dict[str, Any]:
    if json_logs:
        formatters: dict[str, Any] = {
            stream: {"()": JsonFormatter, "stream_label": stream}
            for stream in ("transactional", "audit", "payments")
        }
    else:
        formatters = {stream: {"format": TEXT_FORMAT} for stream in ("transactional", "audit", "payments")}

    def quiet(handler: str) -> dict[str, Any]:
        return {"handlers": [handler], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": formatters,
        "handlers": {stream: _handler(stream, level) for stream in formatters},
        "loggers": {
            "": quiet("transactional"),
            AUDIT_LOGGER: quiet("audit"),
            PAYMENTS_LOGGER: quiet("payments"),
            "uvicorn": quiet("transactional"),
            "uvicorn.error": quiet("transactional"),
            # RequestContextMiddleware writes the access line with the request id.
            "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    }


def configure_logging(level: str | None = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(build_logging_config(log_level, json_logs=settings.log_json))
    logging.getLogger(__name__).info(
        "Logging configured environment=%s level=%s json=%s",
        settings.environment,
        log_level,
        settings.log_json,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)
