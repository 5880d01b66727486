from __future__ import annotations

from datetime import datetime, timedelta, timezone

from credit_ledger.db.models.purchases import Purchase
from credit_ledger.economy.purchases.catalog import PlanSpec
from credit_ledger.economy.purchases.constants import (
    CREDIT_STATUS_FAILED,
    CREDIT_STATUS_GRANTED,
    CREDIT_STATUS_NONE,
    PURCHASE_STATUS_COMPLETED,
)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_fresh(purchase_date: datetime, *, now_utc: datetime, window_hours: int) -> bool:
    return now_utc - as_utc(purchase_date) <= timedelta(hours=window_hours)


def synthesize_transaction_id(*, product_id: str, purchase_date: datetime) -> str:
    epoch_ms = int(as_utc(purchase_date).timestamp() * 1000)
    return f"purchase_{epoch_ms}_{product_id}"


def derive_transaction_id(
    *,
    transaction_id: str | None,
    product_id: str,
    purchase_date: datetime,
    allow_synthesized: bool,
) -> str | None:
    if transaction_id and transaction_id.strip():
        return transaction_id.strip()
    if not allow_synthesized:
        return None
    return synthesize_transaction_id(product_id=product_id, purchase_date=purchase_date)


def credit_expires_at(plan: PlanSpec, *, now_utc: datetime) -> datetime:
    return now_utc + timedelta(days=plan.validity_days)


def is_purchase_credited(purchase: Purchase) -> bool:
    return (
        purchase.processed_at is not None
        or purchase.restored
        or purchase.credit_status == CREDIT_STATUS_GRANTED
    )


def is_manually_restorable(purchase: Purchase) -> bool:
    return (
        purchase.status == PURCHASE_STATUS_COMPLETED
        and purchase.processed_at is None
        and not purchase.restored
        and purchase.credit_status in {CREDIT_STATUS_NONE, CREDIT_STATUS_FAILED}
    )
