from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from redis.asyncio import Redis
from sqlalchemy import text

from dhamira.core.settings import settings
from dhamira.db.session import engine

APP_VERSION = "0.1.0"

Check = Callable[[], Awaitable[dict[str, str]]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _check_redis() -> dict[str, str]:
    client = Redis.from_url(settings.redis_url)
    try:
        await client.ping()
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    finally:
        await client.aclose()


async def _check_payment_rail() -> dict[str, str]:
    if settings.payment_rail == "http" and not settings.payment_rail_url:
        return {"status": "error", "mode": "http", "error": "PAYMENT_RAIL_URL is not configured"}
    return {"status": "ok", "mode": settings.payment_rail}


async def _bounded(check: Check) -> dict[str, str]:
    try:
        return await asyncio.wait_for(check(), timeout=settings.health_check_timeout_seconds)
    except asyncio.TimeoutError:
        return {"status": "error", "error": f"timed out after {settings.health_check_timeout_seconds}s"}


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    """Probe dependencies concurrently; the service is ready only if all are ok."""
    probes: dict[str, Check] = {
        "database": _check_db,
        "redis": _check_redis,
        "payment_rail": _check_payment_rail,
    }
    results = await asyncio.gather(*(_bounded(check) for check in probes.values()))
    checks: dict[str, dict[str, Any]] = {"api": {"status": "ok", "version": APP_VERSION}}
    checks.update(zip(probes, results))
    ready = all(check["status"] == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "timestamp": _now(),
        "checks": checks,
    }
