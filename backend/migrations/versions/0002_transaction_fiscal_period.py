"""Add fiscal period stamp to universal_transactions

Revision ID: 0002_fiscal_period
Revises: 0001_universal_schema
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_fiscal_period"
down_revision = "0001_universal_schema"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("universal_transactions", schema=None) as batch_op:
        batch_op.add_column(sa.Column("fiscal_year", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("fiscal_period", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("posting_period_code", sa.String(length=16), nullable=True))
        batch_op.create_index(
            "ix_universal_transactions_posting_period_code", ["posting_period_code"], unique=False
        )


def downgrade():
    with op.batch_alter_table("universal_transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_universal_transactions_posting_period_code")
        batch_op.drop_column("posting_period_code")
        batch_op.drop_column("fiscal_period")
        batch_op.drop_column("fiscal_year")
