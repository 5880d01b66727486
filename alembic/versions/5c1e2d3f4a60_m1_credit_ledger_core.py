"""m1_credit_ledger_core

Revision ID: 5c1e2d3f4a60
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c1e2d3f4a60"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "credit_balances",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("permanent_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("permanent_amount >= 0", name="ck_credit_balances_permanent_non_negative"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "expiring_credit_batches",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("original_amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("amount > 0", name="ck_expiring_credit_batches_amount_positive"),
    )
    op.create_index(
        "idx_expiring_batches_user_expires",
        "expiring_credit_batches",
        ["user_id", "expires_at"],
    )

    op.create_table(
        "purchases",
        sa.Column("transaction_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("restored", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("credit_status", sa.String(16), nullable=False, server_default=sa.text("'none'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('pending','completed','failed')", name="ck_purchases_status"),
        sa.CheckConstraint(
            "credit_status IN ('none','granted','failed')",
            name="ck_purchases_credit_status",
        ),
        sa.PrimaryKeyConstraint("transaction_id"),
    )
    op.create_index("idx_purchases_user_created", "purchases", ["user_id", "created_at"])
    op.create_index("idx_purchases_user_credit_status", "purchases", ["user_id", "credit_status"])

    op.create_table(
        "credit_restorations",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=False),
        sa.Column("expected_credits", sa.Integer(), nullable=False),
        sa.Column("actual_credits_added", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("expected_credits >= 0", name="ck_credit_restorations_expected_non_negative"),
        sa.CheckConstraint("actual_credits_added >= 0", name="ck_credit_restorations_actual_non_negative"),
        sa.CheckConstraint(
            "reason IN ('initial_purchase','verification','manual_restore')",
            name="ck_credit_restorations_reason",
        ),
        sa.CheckConstraint(
            "status IN ('success','partial','failed')",
            name="ck_credit_restorations_status",
        ),
    )
    op.create_index(
        "idx_credit_restorations_user_created",
        "credit_restorations",
        ["user_id", "created_at"],
    )
    op.create_index(
        "idx_credit_restorations_transaction_status",
        "credit_restorations",
        ["transaction_id", "status"],
    )


def downgrade() -> None:
    op.drop_index("idx_credit_restorations_transaction_status", table_name="credit_restorations")
    op.drop_index("idx_credit_restorations_user_created", table_name="credit_restorations")
    op.drop_table("credit_restorations")

    op.drop_index("idx_purchases_user_credit_status", table_name="purchases")
    op.drop_index("idx_purchases_user_created", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("idx_expiring_batches_user_expires", table_name="expiring_credit_batches")
    op.drop_table("expiring_credit_batches")

    op.drop_table("credit_balances")
