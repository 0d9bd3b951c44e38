"""Pocket money wallet: customers.pocket_money_cents and the wallet ledger

Revision ID: 20261019_pocket_money
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_pocket_money"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("pocket_money_cents", sa.Integer(), nullable=False, server_default=sa.text("0"))
        )
        batch_op.create_check_constraint(
            "ck_customers_pocket_money_non_negative",
            "pocket_money_cents >= 0",
        )

    op.create_table(
        "pocket_money_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("sale_id", sa.String(32), nullable=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("pocket_money_entries", schema=None) as batch_op:
        batch_op.create_index("ix_pocket_money_entries_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_pocket_money_entries_sale_id", ["sale_id"], unique=False)
        batch_op.create_index(
            "ix_pocket_money_entries_customer_created", ["customer_id", "created_at"], unique=False
        )


def downgrade():
    op.drop_table("pocket_money_entries")

    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.drop_constraint("ck_customers_pocket_money_non_negative", type_="check")
        batch_op.drop_column("pocket_money_cents")
