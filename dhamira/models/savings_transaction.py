import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


class SavingsTransaction(Base):
    """Ledger line for a client's savings; negative amounts are deductions."""

    __tablename__ = "savings_transactions"
    __table_args__ = (
        CheckConstraint("amount_cents <> 0", name="ck_savings_amount_nonzero"),
        CheckConstraint("balance_after_cents >= 0", name="ck_savings_balance_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False)
    source = Column(String(20), nullable=False, default="adjustment")
    notes = Column(Text, nullable=True)
    recorded_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
