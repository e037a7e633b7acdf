import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Text, func
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


class CreditAssessment(Base):
    """5 C's credit assessment; history is kept and the latest row gates the loan."""

    __tablename__ = "credit_assessments"
    __table_args__ = (
        CheckConstraint("character BETWEEN 1 AND 5", name="ck_assessment_character_range"),
        CheckConstraint("capacity BETWEEN 1 AND 5", name="ck_assessment_capacity_range"),
        CheckConstraint("capital BETWEEN 1 AND 5", name="ck_assessment_capital_range"),
        CheckConstraint("collateral BETWEEN 1 AND 5", name="ck_assessment_collateral_range"),
        CheckConstraint("conditions BETWEEN 1 AND 5", name="ck_assessment_conditions_range"),
        CheckConstraint("total_score BETWEEN 5 AND 25", name="ck_assessment_total_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    officer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    character = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    capital = Column(Integer, nullable=False)
    collateral = Column(Integer, nullable=False)
    conditions = Column(Integer, nullable=False)
    total_score = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    officer_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
