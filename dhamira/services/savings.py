from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core.exceptions import ValidationFailed
from dhamira.models.client import Client
from dhamira.models.savings_transaction import SavingsTransaction
from dhamira.models.user import User
from dhamira.services.audit import record_audit_log
from dhamira.services.records import get_or_404

logger = logging.getLogger(__name__)


async def _post(
    db: AsyncSession,
    client_id: UUID,
    amount_cents: int,
    *,
    source: str,
    notes: str | None,
    actor: User,
) -> SavingsTransaction:
    client = await get_or_404(db, Client, client_id, label="Client", for_update=True)
    balance = (client.savings_balance_cents or 0) + amount_cents
    if balance < 0:
        raise ValidationFailed(
            "Deduction exceeds the client's savings balance",
            code="insufficient_savings",
            details={"balance_cents": client.savings_balance_cents or 0},
        )
    old_balance = client.savings_balance_cents or 0
    client.savings_balance_cents = balance
    entry = SavingsTransaction(
        client_id=client.id,
        group_id=client.group_id,
        amount_cents=amount_cents,
        balance_after_cents=balance,
        source=source,
        notes=notes,
        recorded_by_id=actor.id,
    )
    db.add(client)
    db.add(entry)
    record_audit_log(
        db,
        actor_id=actor.id,
        action=f"savings.{source}",
        resource_type="client",
        resource_id=str(client.id),
        old_value={"savings_balance_cents": old_balance},
        new_value={"savings_balance_cents": balance},
    )
    await db.commit()
    await db.refresh(entry)
    logger.info("Savings %s client_id=%s amount_cents=%s balance_cents=%s", source, client.id, amount_cents, balance)
    return entry


async def adjust(
    db: AsyncSession,
    client_id: UUID,
    amount_cents: int,
    actor: User,
    *,
    notes: str | None = None,
) -> SavingsTransaction:
    """Signed adjustment; the balance may never go below zero."""
    return await _post(db, client_id, amount_cents, source="adjustment", notes=notes, actor=actor)


async def deposit(
    db: AsyncSession,
    client_id: UUID,
    amount_cents: int,
    actor: User,
    *,
    notes: str | None = None,
) -> SavingsTransaction:
    if amount_cents <= 0:
        raise ValidationFailed("Deposits must be a positive amount")
    return await _post(db, client_id, amount_cents, source="deposit", notes=notes, actor=actor)


async def list_transactions(
    db: AsyncSession,
    *,
    client_id: UUID | None = None,
    group_id: UUID | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[SavingsTransaction], int]:
    conditions = []
    if client_id:
        conditions.append(SavingsTransaction.client_id == client_id)
    if group_id:
        conditions.append(SavingsTransaction.group_id == group_id)
    count_stmt = select(func.count()).select_from(SavingsTransaction).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(SavingsTransaction)
        .where(*conditions)
        .order_by(SavingsTransaction.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list((await db.execute(stmt)).scalars().all()), total
