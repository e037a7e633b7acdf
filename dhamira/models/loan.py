import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("principal_cents > 0", name="ck_loans_principal_positive"),
        CheckConstraint("term_months > 0", name="ck_loans_term_positive"),
        CheckConstraint("interest_cents >= 0", name="ck_loans_interest_nonneg"),
        CheckConstraint("total_paid_cents >= 0", name="ck_loans_paid_nonneg"),
        CheckConstraint("outstanding_cents >= 0", name="ck_loans_outstanding_nonneg"),
        CheckConstraint("version >= 1", name="ck_loans_version_positive"),
        CheckConstraint(
            "status IN ('initiated', 'approved', 'rejected', 'disbursed', 'repaid', 'defaulted', 'cancelled')",
            name="ck_loans_status",
        ),
        CheckConstraint("loan_type IN ('individual', 'group')", name="ck_loans_loan_type"),
        Index("ix_loans_status_created", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)
    loan_type = Column(String(20), nullable=False, default="individual")
    product = Column(String(30), nullable=False, default="business")
    principal_cents = Column(BigInteger, nullable=False)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    total_due_cents = Column(BigInteger, nullable=False)
    total_paid_cents = Column(BigInteger, nullable=False, default=0)
    outstanding_cents = Column(BigInteger, nullable=False)
    term_months = Column(Integer, nullable=False)
    cycle = Column(Integer, nullable=False, default=1)
    purpose = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="initiated", index=True)
    application_fee_paid = Column(Boolean, nullable=False, default=False, server_default="false")
    initiated_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    disbursed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    disbursement_reference = Column(String(100), nullable=True)
    due_date = Column(Date, nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}
