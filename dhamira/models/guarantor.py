import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


class Guarantor(Base):
    __tablename__ = "guarantors"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'accepted', 'rejected')", name="ck_guarantors_status"),
        UniqueConstraint("loan_id", "national_id", name="uq_guarantors_loan_national_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    national_id = Column(String(50), nullable=False)
    phone = Column(String(50), nullable=True)
    relationship = Column(String(100), nullable=True)
    is_member = Column(Boolean, nullable=False, default=False, server_default="false")
    id_copy_url = Column(String(1024), nullable=True)
    photo_url = Column(String(1024), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    decided_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
