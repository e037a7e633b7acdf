"""Create back office schema"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "branches",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("branch_id", UUID, sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('super_admin', 'initiator_admin', 'approver_admin', 'loan_officer')",
            name="ck_users_role",
        ),
    )
    op.create_index("ix_users_role", "users", ["role"])

    # signatory foreign keys to clients are added once clients exists
    op.create_table(
        "groups",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("branch_id", UUID, sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True),
        sa.Column("loan_officer_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("meeting_day", sa.String(length=20), nullable=True),
        sa.Column("meeting_time", sa.String(length=10), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("chairperson_id", UUID, nullable=True),
        sa.Column("secretary_id", UUID, nullable=True),
        sa.Column("treasurer_id", UUID, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'active', 'rejected')", name="ck_groups_status"),
    )
    op.create_index("ix_groups_status", "groups", ["status"])

    op.create_table(
        "clients",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("national_id", sa.String(length=50), nullable=False, unique=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("residence", sa.String(length=255), nullable=True),
        sa.Column("business_type", sa.String(length=255), nullable=True),
        sa.Column("branch_id", UUID, sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("loan_officer_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("savings_balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'active', 'rejected')", name="ck_clients_status"),
        sa.CheckConstraint("savings_balance_cents >= 0", name="ck_clients_savings_nonneg"),
    )
    op.create_index("ix_clients_group_id", "clients", ["group_id"])
    op.create_index("ix_clients_status", "clients", ["status"])

    for column in ("chairperson_id", "secretary_id", "treasurer_id"):
        op.create_foreign_key(
            f"fk_groups_{column}",
            "groups",
            "clients",
            [column],
            ["id"],
            ondelete="SET NULL",
        )

    op.create_table(
        "loans",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("client_id", UUID, sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("loan_type", sa.String(length=20), nullable=False, server_default="individual"),
        sa.Column("product", sa.String(length=30), nullable=False, server_default="business"),
        sa.Column("principal_cents", sa.BigInteger(), nullable=False),
        sa.Column("interest_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_due_cents", sa.BigInteger(), nullable=False),
        sa.Column("total_paid_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("outstanding_cents", sa.BigInteger(), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("cycle", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="initiated"),
        sa.Column("application_fee_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("initiated_by_id", UUID, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("disbursed_by_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("disbursed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("disbursement_reference", sa.String(length=100), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("principal_cents > 0", name="ck_loans_principal_positive"),
        sa.CheckConstraint("term_months > 0", name="ck_loans_term_positive"),
        sa.CheckConstraint("interest_cents >= 0", name="ck_loans_interest_nonneg"),
        sa.CheckConstraint("total_paid_cents >= 0", name="ck_loans_paid_nonneg"),
        sa.CheckConstraint("outstanding_cents >= 0", name="ck_loans_outstanding_nonneg"),
        sa.CheckConstraint("version >= 1", name="ck_loans_version_positive"),
        sa.CheckConstraint(
            "status IN ('initiated', 'approved', 'rejected', 'disbursed', 'repaid', 'defaulted', 'cancelled')",
            name="ck_loans_status",
        ),
        sa.CheckConstraint("loan_type IN ('individual', 'group')", name="ck_loans_loan_type"),
    )
    op.create_index("ix_loans_client_id", "loans", ["client_id"])
    op.create_index("ix_loans_group_id", "loans", ["group_id"])
    op.create_index("ix_loans_status", "loans", ["status"])
    op.create_index("ix_loans_initiated_by_id", "loans", ["initiated_by_id"])
    op.create_index("ix_loans_status_created", "loans", ["status", "created_at"])

    op.create_table(
        "loan_approvals",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("loan_id", UUID, sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("decision", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("decision IN ('approved', 'rejected')", name="ck_loan_approvals_decision"),
    )
    op.create_index("ix_loan_approvals_loan_id", "loan_approvals", ["loan_id"])

    op.create_table(
        "guarantors",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("loan_id", UUID, sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", UUID, sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("national_id", sa.String(length=50), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("relationship", sa.String(length=100), nullable=True),
        sa.Column("is_member", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("id_copy_url", sa.String(length=1024), nullable=True),
        sa.Column("photo_url", sa.String(length=1024), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("decided_by_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("decided_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'rejected')", name="ck_guarantors_status"),
        sa.UniqueConstraint("loan_id", "national_id", name="uq_guarantors_loan_national_id"),
    )
    op.create_index("ix_guarantors_loan_id", "guarantors", ["loan_id"])
    op.create_index("ix_guarantors_status", "guarantors", ["status"])

    op.create_table(
        "credit_assessments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("loan_id", UUID, sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("officer_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("character", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("capital", sa.Integer(), nullable=False),
        sa.Column("collateral", sa.Integer(), nullable=False),
        sa.Column("conditions", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("officer_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("character BETWEEN 1 AND 5", name="ck_assessment_character_range"),
        sa.CheckConstraint("capacity BETWEEN 1 AND 5", name="ck_assessment_capacity_range"),
        sa.CheckConstraint("capital BETWEEN 1 AND 5", name="ck_assessment_capital_range"),
        sa.CheckConstraint("collateral BETWEEN 1 AND 5", name="ck_assessment_collateral_range"),
        sa.CheckConstraint("conditions BETWEEN 1 AND 5", name="ck_assessment_conditions_range"),
        sa.CheckConstraint("total_score BETWEEN 5 AND 25", name="ck_assessment_total_range"),
    )
    op.create_index("ix_credit_assessments_loan_id", "credit_assessments", ["loan_id"])

    op.create_table(
        "repayments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("loan_id", UUID, sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=False, server_default="cash"),
        sa.Column("reference", sa.String(length=100), nullable=True),
        sa.Column("paid_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("recorded_by_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents > 0", name="ck_repayments_amount_positive"),
        sa.CheckConstraint("method IN ('cash', 'mpesa', 'bank')", name="ck_repayments_method"),
    )
    op.create_index("ix_repayments_loan_id", "repayments", ["loan_id"])

    op.create_table(
        "savings_transactions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("client_id", UUID, sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("balance_after_cents", sa.BigInteger(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="adjustment"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount_cents <> 0", name="ck_savings_amount_nonzero"),
        sa.CheckConstraint("balance_after_cents >= 0", name="ck_savings_balance_nonneg"),
    )
    op.create_index("ix_savings_transactions_client_id", "savings_transactions", ["client_id"])
    op.create_index("ix_savings_transactions_group_id", "savings_transactions", ["group_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("actor_id", UUID, nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("savings_transactions")
    op.drop_table("repayments")
    op.drop_table("credit_assessments")
    op.drop_table("guarantors")
    op.drop_table("loan_approvals")
    op.drop_table("loans")
    for column in ("chairperson_id", "secretary_id", "treasurer_id"):
        op.drop_constraint(f"fk_groups_{column}", "groups", type_="foreignkey")
    op.drop_table("clients")
    op.drop_table("groups")
    op.drop_table("users")
    op.drop_table("branches")
