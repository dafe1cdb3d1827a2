from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# SQLite only autoincrements an INTEGER PRIMARY KEY (rowid alias).
_PK_TYPE = BigInteger().with_variant(Integer, "sqlite")


# ---------------------------
# Core: bb_transactions
# ---------------------------


class BbTransaction(Base):
    __tablename__ = "bb_transactions"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String, nullable=False)
    external_id: Mapped[str] = mapped_column(String, nullable=False)

    # Sourced fields: owned by the bank feed and refreshed on re-import.
    booked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    category: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)

    # User-owned fields: never written by the importer.
    category_override: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    category_source: Mapped[str] = mapped_column(
        String,
        nullable=False,
        server_default=text("'import'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_bb_tx_account_external_id"),
        CheckConstraint("type in ('income','expense')", name="ck_bb_tx_type"),
        CheckConstraint(
            "category_source in ('import','manual')",
            name="ck_bb_tx_category_source",
        ),
        Index("ix_bb_transactions_account_booked_at", "account_id", "booked_at"),
    )


# ---------------------------
# History: bb_import_runs
# ---------------------------


class BbImportRun(Base):
    __tablename__ = "bb_import_runs"

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    inserted: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    updated: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    failed: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status in ('succeeded','partial','cancelled')",
            name="ck_bb_import_runs_status",
        ),
        Index("ix_bb_import_runs_account_finished", "account_id", "finished_at"),
    )


__all__ = [
    "Base",
    "BbImportRun",
    "BbTransaction",
]
