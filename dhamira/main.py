from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from dhamira.api.v1 import api_router
from dhamira.core.errors import register_exception_handlers
from dhamira.core.health import APP_VERSION
from dhamira.core.limiter import limiter
from dhamira.core.logging import configure_logging
from dhamira.core.response_envelope import register_response_envelope
from dhamira.core.settings import settings
from dhamira.events import register_event_handlers
from dhamira.middlewares.request_context import RequestContextMiddleware
from dhamira.middlewares.security_headers import SecurityHeadersMiddleware

API_PREFIX = "/api"


def create_app() -> FastAPI:
    configure_logging()
    docs_enabled = settings.environment != "production"
    app = FastAPI(
        title="Dhamira Back Office",
        version=APP_VERSION,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    register_exception_handlers(app)
    register_response_envelope(app, prefix=API_PREFIX)

    # Added innermost first; CORS ends up outermost.
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts, api_prefix=API_PREFIX)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(api_router, prefix=API_PREFIX)
    register_event_handlers(app)
    return app


app = create_app()
