"""Per-request identity carried through contextvars into log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass, replace

UNSET = "-"


@dataclass(frozen=True, slots=True)
class RequestContext:
    request_id: str = UNSET
    actor_id: str = UNSET
    actor_role: str = UNSET


_current: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    "dhamira_request_context", default=RequestContext()
)


def current() -> RequestContext:
    return _current.get()


def begin_request(request_id: str) -> RequestContext:
    """Start a fresh context for an incoming request."""
    ctx = RequestContext(request_id=request_id)
    _current.set(ctx)
    return ctx


def bind_actor(actor_id: str, role: str | None = None) -> None:
    _current.set(replace(_current.get(), actor_id=actor_id, actor_role=role or UNSET))


def get_request_id() -> str:
    return _current.get().request_id


def get_actor_id() -> str:
    return _current.get().actor_id


def clear_context() -> None:
    _current.set(RequestContext())
