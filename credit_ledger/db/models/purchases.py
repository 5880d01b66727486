from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.db.models.base import Base


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','completed','failed')",
            name="ck_purchases_status",
        ),
        CheckConstraint(
            "credit_status IN ('none','granted','failed')",
            name="ck_purchases_credit_status",
        ),
        Index("idx_purchases_user_created", "user_id", "created_at"),
        Index("idx_purchases_user_credit_status", "user_id", "credit_status"),
    )

    transaction_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    restored: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    credit_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'none'"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
