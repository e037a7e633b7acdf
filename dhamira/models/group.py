import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from dhamira.db.base import Base


SIGNATORY_ROLES = ("chairperson", "secretary", "treasurer")


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'active', 'rejected')", name="ck_groups_status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    loan_officer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    meeting_day = Column(String(20), nullable=True)
    meeting_time = Column(String(10), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    chairperson_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL", use_alter=True), nullable=True)
    secretary_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL", use_alter=True), nullable=True)
    treasurer_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL", use_alter=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
