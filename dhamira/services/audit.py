"""Audit trail: a row in ``audit_logs`` plus a line on the audit log stream."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.logging import get_audit_logger
from dhamira.models.audit_log import AuditLog

audit_logger = get_audit_logger()

SUMMARY_FIELD_LIMIT = 3

_ENCODERS = {
    Decimal: str,
    datetime: lambda v: v.isoformat(),
    date: lambda v: v.isoformat(),
    UUID: str,
}


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder=_ENCODERS)


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    """Column values of an ORM instance, JSON-ready, minus ``exclude``."""
    if model is None:
        return {}
    skip = frozenset(exclude or ())
    return serialize_for_audit(
        {column.name: getattr(model, column.name) for column in model.__table__.columns if column.name not in skip}
    )


def diff_snapshots(old: Any, new: Any, path: str = "") -> dict[str, dict[str, Any]]:
    """Changed leaves as ``{dotted.path: {"from": old, "to": new}}``."""
    if isinstance(old, Mapping) and isinstance(new, Mapping):
        changes: dict[str, dict[str, Any]] = {}
        for key in sorted(set(old) | set(new), key=str):
            changes.update(diff_snapshots(old.get(key), new.get(key), f"{path}.{key}" if path else str(key)))
        return changes
    if old == new:
        return {}
    return {path or "value": {"from": old, "to": new}}


def summarize(action: str, changes: Mapping[str, Any] | None) -> str:
    if not changes:
        return action
    fields = list(changes)
    shown = ", ".join(fields[:SUMMARY_FIELD_LIMIT])
    return f"{action}: {shown}..." if len(fields) > SUMMARY_FIELD_LIMIT else f"{action}: {shown}"


def record_audit_log(
    db: AsyncSession,
    *,
    actor_id,
    action: str,
    resource_type: str,
    resource_id: str,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> AuditLog:
    """Stage an audit row on the session; it commits with the caller's change."""
    before = None if old_value is None else serialize_for_audit(old_value)
    after = None if new_value is None else serialize_for_audit(new_value)
    changes = None
    if before is not None or after is not None:
        changes = diff_snapshots(before or {}, after or {}) or None
    summary = summarize(action, changes)

    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        old_value=before,
        new_value=after,
        changes=changes,
        summary=summary,
    )
    db.add(entry)
    audit_logger.info(
        summary,
        extra={
            "audit": {
                "action": action,
                "resource": f"{resource_type}:{resource_id}",
                "actor_id": str(actor_id) if actor_id else None,
                "changes": changes,
            }
        },
    )
    return entry
