"""create users, family members and medical bill ledger tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

BILL_STATUSES = ("unpaid", "partially_paid", "paid", "disputed", "in_review", "resolved")
PAYMENT_METHODS = (
    "cash", "check", "credit_card", "debit_card", "bank_transfer",
    "online_portal", "money_order", "stripe", "other",
)


def _timestamps():
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.execute("CREATE TYPE bill_status AS ENUM (" + ", ".join(f"'{s}'" for s in BILL_STATUSES) + ")")
    op.execute("CREATE TYPE payment_method AS ENUM (" + ", ".join(f"'{m}'" for m in PAYMENT_METHODS) + ")")

    op.create_table(
        "users",
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "family_members",
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("relationship_type", sa.String(50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_family_members_id"), "family_members", ["id"], unique=False)
    op.create_index(op.f("ix_family_members_user_id"), "family_members", ["user_id"], unique=False)

    op.create_table(
        "medical_bills",
        sa.Column("biller", postgresql.JSONB(), nullable=False),
        sa.Column("account", postgresql.JSONB(), nullable=False),
        sa.Column("date_of_service", sa.Date(), nullable=True),
        sa.Column("date_received", sa.Date(), nullable=True),
        sa.Column("statement_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("amount_billed", sa.Numeric(12, 2), nullable=False),
        sa.Column("insurance_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("insurance_adjusted", sa.Numeric(12, 2), nullable=False),
        sa.Column("patient_responsibility", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", postgresql.ENUM(*BILL_STATUSES, name="bill_status", create_type=False), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ai_analysis", postgresql.JSONB(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("family_member_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["family_member_id"], ["family_members.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_medical_bills_id"), "medical_bills", ["id"], unique=False)
    op.create_index(op.f("ix_medical_bills_user_id"), "medical_bills", ["user_id"], unique=False)
    op.create_index(op.f("ix_medical_bills_family_member_id"), "medical_bills", ["family_member_id"], unique=False)
    op.create_index(op.f("ix_medical_bills_date_of_service"), "medical_bills", ["date_of_service"], unique=False)
    op.create_index(op.f("ix_medical_bills_status"), "medical_bills", ["status"], unique=False)

    op.create_table(
        "bill_documents",
        sa.Column("bill_id", sa.UUID(), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["bill_id"], ["medical_bills.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("storage_key"),
    )
    op.create_index(op.f("ix_bill_documents_id"), "bill_documents", ["id"], unique=False)
    op.create_index(op.f("ix_bill_documents_bill_id"), "bill_documents", ["bill_id"], unique=False)

    op.create_table(
        "bill_payments",
        sa.Column("bill_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("method", postgresql.ENUM(*PAYMENT_METHODS, name="payment_method", create_type=False), nullable=False),
        sa.Column("reference_number", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["bill_id"], ["medical_bills.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bill_id", "payment_intent_id", name="uq_bill_payments_intent"),
    )
    op.create_index(op.f("ix_bill_payments_id"), "bill_payments", ["id"], unique=False)
    op.create_index(op.f("ix_bill_payments_bill_id"), "bill_payments", ["bill_id"], unique=False)


def downgrade() -> None:
    op.drop_table("bill_payments")
    op.drop_table("bill_documents")
    op.drop_table("medical_bills")
    op.drop_table("family_members")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS payment_method")
    op.execute("DROP TYPE IF EXISTS bill_status")
