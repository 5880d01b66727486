from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from credit_ledger.economy.credits.errors import CreditValidationError
from credit_ledger.economy.credits.rules import (
    is_expired,
    order_for_spend,
    plan_spend,
    split_expired,
    validate_amount,
)
from credit_ledger.economy.credits.types import BatchAdjustment, BatchSnapshot, LedgerSnapshot

UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def batch(batch_id: int, amount: int, *, days: int) -> BatchSnapshot:
    return BatchSnapshot(batch_id=batch_id, amount=amount, expires_at=NOW + timedelta(days=days))


@pytest.mark.parametrize("amount", [0, -1, 1.5, "3", True, None])
def test_validate_amount_rejects_non_positive_and_non_integer(amount: object) -> None:
    with pytest.raises(CreditValidationError):
        validate_amount(amount)


def test_validate_amount_returns_value() -> None:
    assert validate_amount(7) == 7


def test_expiry_boundary_is_strict() -> None:
    assert is_expired(NOW - timedelta(seconds=1), now_utc=NOW) is True
    assert is_expired(NOW, now_utc=NOW) is False


def test_split_expired_separates_past_batches() -> None:
    live, expired = split_expired([batch(1, 5, days=-1), batch(2, 5, days=1)], now_utc=NOW)

    assert [item.batch_id for item in live] == [2]
    assert [item.batch_id for item in expired] == [1]


def test_order_for_spend_is_soonest_expiry_then_id() -> None:
    ordered = order_for_spend([batch(3, 1, days=5), batch(2, 1, days=1), batch(1, 1, days=5)])
    assert [item.batch_id for item in ordered] == [2, 1, 3]


def test_plan_spend_consumes_soonest_expiring_batch_first() -> None:
    snapshot = LedgerSnapshot(permanent_amount=0, batches=[batch(2, 5, days=10), batch(1, 5, days=1)])

    plan = plan_spend(snapshot, amount=3)

    assert plan.allowed is True
    assert plan.batch_adjustments == [BatchAdjustment(batch_id=1, new_amount=2)]
    assert plan.permanent_debit == 0


def test_plan_spend_drains_batches_before_permanent() -> None:
    snapshot = LedgerSnapshot(permanent_amount=10, batches=[batch(1, 4, days=1), batch(2, 3, days=2)])

    plan = plan_spend(snapshot, amount=9)

    assert plan.batch_adjustments == [
        BatchAdjustment(batch_id=1, new_amount=0),
        BatchAdjustment(batch_id=2, new_amount=0),
    ]
    assert plan.permanent_debit == 2


def test_plan_spend_is_all_or_nothing_when_short() -> None:
    snapshot = LedgerSnapshot(permanent_amount=2, batches=[batch(1, 3, days=1)])

    plan = plan_spend(snapshot, amount=8)

    assert plan.allowed is False
    assert plan.shortfall == 3
    assert plan.batch_adjustments == []
    assert plan.permanent_debit == 0


def test_plan_spend_exact_total_succeeds() -> None:
    snapshot = LedgerSnapshot(permanent_amount=2, batches=[batch(1, 3, days=1)])

    plan = plan_spend(snapshot, amount=5)

    assert plan.allowed is True
    assert plan.permanent_debit == 2
    assert snapshot.total == 5
