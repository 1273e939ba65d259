"""add payment-app reconciliation columns

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 12:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

P2P_DIRECTION = sa.Enum("sent", "received", "withdrawal", name="p2pdirection")
RECONCILIATION_STATUS = sa.Enum(
    "matched", "balance_paid", "withdrawal_matched", "reimbursement",
    name="reconciliationstatus",
)


def upgrade() -> None:
    bind = op.get_bind()
    P2P_DIRECTION.create(bind, checkfirst=True)
    RECONCILIATION_STATUS.create(bind, checkfirst=True)

    op.add_column("transactions", sa.Column("p2p_direction", P2P_DIRECTION, nullable=True))
    op.add_column("transactions", sa.Column("reconciliation_status", RECONCILIATION_STATUS, nullable=True))


def downgrade() -> None:
    # SQLite cannot drop columns in place
    with op.batch_alter_table("transactions") as batch_op:
        batch_op.drop_column("reconciliation_status")
        batch_op.drop_column("p2p_direction")

    bind = op.get_bind()
    RECONCILIATION_STATUS.drop(bind, checkfirst=True)
    P2P_DIRECTION.drop(bind, checkfirst=True)
