from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from dhamira.core.security import decode_token
from dhamira.core.settings import settings


def rate_limit_key(request: Request) -> str:
    """Bucket signed-in staff by user id so a shared branch IP is not throttled as one."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            subject = decode_token(token, expected_type="access").get("sub")
        except ValueError:
            subject = None
        if subject:
            return f"user:{subject}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.rate_limit_storage_uri or settings.redis_url,
)
