"""Pure ledger arithmetic.

Nothing here touches the database; the service layer loads a ``LedgerSnapshot``
under the user's row lock, asks these helpers what to change, then writes it back.
"""

from __future__ import annotations

from datetime import datetime

from credit_ledger.economy.credits.errors import CreditValidationError
from credit_ledger.economy.credits.types import (
    BatchAdjustment,
    BatchSnapshot,
    LedgerSnapshot,
    SpendPlan,
)


def validate_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise CreditValidationError("amount must be an integer")
    if amount <= 0:
        raise CreditValidationError("amount must be positive")
    return amount


def is_expired(expires_at: datetime, *, now_utc: datetime) -> bool:
    return expires_at < now_utc


def split_expired(
    batches: list[BatchSnapshot],
    *,
    now_utc: datetime,
) -> tuple[list[BatchSnapshot], list[BatchSnapshot]]:
    live: list[BatchSnapshot] = []
    expired: list[BatchSnapshot] = []
    for batch in batches:
        if is_expired(batch.expires_at, now_utc=now_utc):
            expired.append(batch)
        else:
            live.append(batch)
    return live, expired


def order_for_spend(batches: list[BatchSnapshot]) -> list[BatchSnapshot]:
    # soonest-expiring first; id breaks ties so replays are deterministic
    return sorted(batches, key=lambda batch: (batch.expires_at, batch.batch_id))


def plan_spend(snapshot: LedgerSnapshot, *, amount: int) -> SpendPlan:
    validate_amount(amount)

    available = snapshot.total
    if amount > available:
        return SpendPlan(
            requested=amount,
            batch_adjustments=[],
            permanent_debit=0,
            shortfall=amount - available,
        )

    remaining = amount
    adjustments: list[BatchAdjustment] = []
    for batch in order_for_spend(snapshot.batches):
        if remaining <= 0:
            break
        if batch.amount <= 0:
            continue
        deduct = min(batch.amount, remaining)
        adjustments.append(BatchAdjustment(batch_id=batch.batch_id, new_amount=batch.amount - deduct))
        remaining -= deduct

    return SpendPlan(
        requested=amount,
        batch_adjustments=adjustments,
        permanent_debit=remaining,
        shortfall=0,
    )
