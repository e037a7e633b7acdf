import logging
import re
import time
from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from dhamira.core import context

logger = logging.getLogger("dhamira.access")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _incoming_request_id(scope: Scope) -> str | None:
    for key, value in scope.get("headers", []):
        if key == b"x-request-id":
            candidate = value.decode("latin-1").strip()
            if _REQUEST_ID_PATTERN.match(candidate):
                return candidate
            return None
    return None


class RequestContextMiddleware:
    """Bind a request id for log correlation and write one access line per request.

    A caller-supplied ``X-Request-ID`` is reused when it is a short token;
    anything else is replaced by a fresh uuid. The id is echoed back on the
    response.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid4().hex
        context.begin_request(request_id)
        started = time.perf_counter()
        status_holder: dict[str, int] = {}

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                status_holder["status"] = message["status"]
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-id", request_id.encode("latin-1")),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            logger.info(
                "%s %s -> %s in %.1fms",
                scope.get("method", "-"),
                scope.get("path", "-"),
                status_holder.get("status", 500),
                (time.perf_counter() - started) * 1000,
            )
            context.clear_context()
