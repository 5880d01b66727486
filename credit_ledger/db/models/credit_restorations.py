from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.db.models.base import Base


class CreditRestoration(Base):
    __tablename__ = "credit_restorations"
    __table_args__ = (
        CheckConstraint("expected_credits >= 0", name="ck_credit_restorations_expected_non_negative"),
        CheckConstraint(
            "actual_credits_added >= 0",
            name="ck_credit_restorations_actual_non_negative",
        ),
        CheckConstraint(
            "reason IN ('initial_purchase','verification','manual_restore')",
            name="ck_credit_restorations_reason",
        ),
        CheckConstraint(
            "status IN ('success','partial','failed')",
            name="ck_credit_restorations_status",
        ),
        Index("idx_credit_restorations_user_created", "user_id", "created_at"),
        Index("idx_credit_restorations_transaction_status", "transaction_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    expected_credits: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_credits_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
