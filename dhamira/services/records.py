from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import NotFoundError

ModelT = TypeVar("ModelT")


async def get_or_404(
    db: AsyncSession,
    model: type[ModelT],
    record_id: Any,
    *,
    label: str | None = None,
    for_update: bool = False,
) -> ModelT:
    stmt = select(model).where(model.id == record_id)  # type: ignore[attr-defined]
    if for_update:
        stmt = stmt.with_for_update()
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        name = label or model.__name__
        raise NotFoundError(f"{name} not found", details={"id": str(record_id)})
    return record
