"""initial ledger schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_STATUS = sa.Enum(
    "provisional", "pending", "flagged", "skipped", "categorized", "verified",
    name="transactionstatus",
)
TRANSACTION_TYPE = sa.Enum("expense", "income", "transfer", name="transactiontype")
CATEGORY_SOURCE = sa.Enum("auto", "user_manual", "rule", name="categorysource")
CARD_PROVIDER = sa.Enum("isracard", "cal", "max", "leumi", "unknown", name="cardprovider")


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("name_local", sa.String(100), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), nullable=False, index=True),
        sa.Column("date", sa.Date(), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("original_currency", sa.String(3), nullable=True),
        sa.Column("merchant_raw", sa.Text(), nullable=False),
        sa.Column("merchant_normalized", sa.String(255), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("category_source", CATEGORY_SOURCE, nullable=True),
        sa.Column("category_confidence", sa.Integer(), nullable=True),
        sa.Column("status", TRANSACTION_STATUS, nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("duplicate_of", sa.String(36), sa.ForeignKey("transactions.id"), nullable=True),
        sa.Column("sms_id", sa.String(36), nullable=True, index=True),
        sa.Column("receipt_id", sa.String(36), nullable=True),
        sa.Column("source_file", sa.String(255), nullable=True),
        sa.Column("source_row", sa.Integer(), nullable=True),
        sa.Column("cc_slip_linked_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_transaction_household_date", "transactions", ["household_id", "date"])
    op.create_index("idx_transaction_household_status", "transactions", ["household_id", "status"])

    op.create_table(
        "sms_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), nullable=False, index=True),
        sa.Column("card_ending", sa.String(4), nullable=False),
        sa.Column("merchant_name", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("provider", CARD_PROVIDER, nullable=False),
        sa.Column("raw_message", sa.Text(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.String(36),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("cc_matched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cc_matched_at", sa.DateTime(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_sms_pending", "sms_transactions", ["household_id", "cc_matched"])
    op.create_index("idx_sms_matching", "sms_transactions", ["household_id", "transaction_date", "amount"])

    op.create_table(
        "email_receipts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), nullable=False, index=True),
        sa.Column("sender_email", sa.String(255), nullable=True),
        sa.Column("raw_subject", sa.Text(), nullable=True),
        sa.Column("merchant_name", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("receipt_date", sa.Date(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("is_receipt", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("parse_confidence", sa.Integer(), nullable=True),
        sa.Column(
            "matched_transaction_id",
            sa.String(36),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("match_confidence", sa.Integer(), nullable=True),
        sa.Column("matched_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_receipt_household_date", "email_receipts", ["household_id", "receipt_date"])

    op.create_table(
        "merchant_memory",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("household_id", sa.String(36), nullable=False, index=True),
        sa.Column("merchant_normalized", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("household_id", "merchant_normalized", name="uq_memory_household_merchant"),
    )


def downgrade() -> None:
    op.drop_table("merchant_memory")
    op.drop_index("idx_receipt_household_date", table_name="email_receipts")
    op.drop_table("email_receipts")
    op.drop_index("idx_sms_matching", table_name="sms_transactions")
    op.drop_index("idx_sms_pending", table_name="sms_transactions")
    op.drop_table("sms_transactions")
    op.drop_index("idx_transaction_household_status", table_name="transactions")
    op.drop_index("idx_transaction_household_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
