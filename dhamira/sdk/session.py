from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Explicit holder of the bearer token and the signed-in user.

    Populated by ``ApiClient.refresh_session`` and cleared by ``invalidate``
    when the server answers 401.
    """

    token: str | None = None
    user: dict[str, Any] | None = None
    allowed_actions: frozenset[str] = frozenset()
    listeners: list[Callable[["Session"], None]] = field(default_factory=list)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def role(self) -> str | None:
        return (self.user or {}).get("role")

    @property
    def user_id(self) -> str | None:
        value = (self.user or {}).get("id")
        return str(value) if value is not None else None

    def authorization_header(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def update(self, payload: dict[str, Any]) -> None:
        self.user = dict(payload.get("user") or {})
        self.allowed_actions = frozenset(payload.get("allowed_actions") or [])

    def on_invalidate(self, listener: Callable[["Session"], None]) -> None:
        self.listeners.append(listener)

    def invalidate(self) -> None:
        logger.info("Session invalidated user_id=%s", self.user_id)
        self.token = None
        self.user = None
        self.allowed_actions = frozenset()
        for listener in list(self.listeners):
            listener(self)
