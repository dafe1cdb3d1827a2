# ruff: noqa: I001
"""Bank-sync core tables: imported transactions and import runs.

Revision ID: 0001_bb_core
Revises: None
Create Date: 2026-01-12
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_bb_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLite only autoincrements an INTEGER PRIMARY KEY.
_PK_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "bb_transactions",
        sa.Column("id", _PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("external_id", sa.Text(), nullable=False),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.CHAR(3), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("category_override", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "category_source",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'import'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("account_id", "external_id", name="uq_bb_tx_account_external_id"),
        sa.CheckConstraint("type in ('income','expense')", name="ck_bb_tx_type"),
        sa.CheckConstraint(
            "category_source in ('import','manual')",
            name="ck_bb_tx_category_source",
        ),
    )
    op.create_index(
        "ix_bb_transactions_account_booked_at",
        "bb_transactions",
        ["account_id", "booked_at"],
        unique=False,
    )

    op.create_table(
        "bb_import_runs",
        sa.Column("id", _PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("inserted", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.Text(), nullable=False),
        sa.CheckConstraint(
            "status in ('succeeded','partial','cancelled')",
            name="ck_bb_import_runs_status",
        ),
    )
    op.create_index(
        "ix_bb_import_runs_account_finished",
        "bb_import_runs",
        ["account_id", "finished_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_bb_import_runs_account_finished", table_name="bb_import_runs")
    op.drop_table("bb_import_runs")
    op.drop_index("ix_bb_transactions_account_booked_at", table_name="bb_transactions")
    op.drop_table("bb_transactions")
