from starlette.types import ASGIApp, Message, Receive, Scope, Send

BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"permissions-policy", b"camera=(), microphone=(), geolocation=()"),
)
HSTS_HEADER = (b"strict-transport-security", b"max-age=63072000; includeSubDomains")
# Client balances and loan records must not be kept by shared caches.
NO_STORE_HEADER = (b"cache-control", b"no-store")


class SecurityHeadersMiddleware:
    """Add default security headers; API responses are also marked uncacheable."""

    def __init__(self, app: ASGIApp, enable_hsts: bool = True, api_prefix: str = "/api") -> None:
        self.app = app
        self.api_prefix = api_prefix
        self.headers = list(BASE_HEADERS)
        if enable_hsts:
            self.headers.append(HSTS_HEADER)

    def _headers_for(self, path: str) -> list[tuple[bytes, bytes]]:
        if path.startswith(self.api_prefix):
            return [*self.headers, NO_STORE_HEADER]
        return self.headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        extra = self._headers_for(scope.get("path", ""))

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                present = {key.lower() for key, _ in headers}
                headers.extend(item for item in extra if item[0] not in present)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)
