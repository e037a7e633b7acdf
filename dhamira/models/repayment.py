import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


class Repayment(Base):
    __tablename__ = "repayments"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_repayments_amount_positive"),
        CheckConstraint("method IN ('cash', 'mpesa', 'bank')", name="ck_repayments_method"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    method = Column(String(20), nullable=False, default="cash")
    reference = Column(String(100), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    recorded_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
