from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from credit_ledger.db.models.expiring_credit_batches import ExpiringCreditBatch
from credit_ledger.db.repo.expiring_batches_repo import ExpiringBatchesRepo
from credit_ledger.db.session import SessionLocal
from credit_ledger.economy.credits.service import CreditService
from tests.integration.ledger_fixtures import NOW, _seed_credits, _total


async def test_spend_uses_soonest_expiring_batch_first() -> None:
    soon_id, later_id = await _seed_credits("fifo-user", batches=((5, 1), (5, 10)))

    async with SessionLocal.begin() as session:
        result = await CreditService.spend(session, user_id="fifo-user", amount=3, now_utc=NOW)

    assert result.allowed is True
    assert result.remaining_total == 7
    async with SessionLocal.begin() as session:
        soon = await ExpiringBatchesRepo.get_by_id(session, soon_id)
        later = await ExpiringBatchesRepo.get_by_id(session, later_id)
        assert soon is not None and soon.amount == 2
        assert later is not None and later.amount == 5


async def test_failed_spend_leaves_balance_unchanged() -> None:
    await _seed_credits("poor-user", permanent=2, batches=((3, 1),))

    async with SessionLocal.begin() as session:
        result = await CreditService.spend(session, user_id="poor-user", amount=6, now_utc=NOW)

    assert result.allowed is False
    assert result.shortfall == 1
    assert await _total("poor-user") == 5


async def test_expired_batches_are_swept_and_not_spendable() -> None:
    await _seed_credits("sweep-user", permanent=1, batches=((10, 1),))
    later = NOW + timedelta(days=2)

    assert await _total("sweep-user", now_utc=later) == 1

    async with SessionLocal.begin() as session:
        result = await CreditService.spend(session, user_id="sweep-user", amount=5, now_utc=later)
        remaining = await session.scalar(
            select(func.count(ExpiringCreditBatch.id)).where(ExpiringCreditBatch.user_id == "sweep-user")
        )

    assert result.allowed is False
    assert remaining == 0


async def test_concurrent_spends_cannot_overdraw() -> None:
    await _seed_credits("race-user", permanent=10)

    async def _spend(amount: int):
        async with SessionLocal.begin() as session:
            return await CreditService.spend(session, user_id="race-user", amount=amount, now_utc=NOW)

    results = await asyncio.gather(_spend(7), _spend(6))

    winners = [result for result in results if result.allowed]
    losers = [result for result in results if not result.allowed]
    assert len(winners) == 1
    assert len(losers) == 1
    assert await _total("race-user") == 10 - winners[0].requested


async def test_concurrent_first_grants_share_one_balance_row() -> None:
    async def _grant() -> None:
        async with SessionLocal.begin() as session:
            await CreditService.grant_permanent(session, user_id="new-user", amount=5, now_utc=NOW)

    await asyncio.gather(_grant(), _grant(), _grant())

    assert await _total("new-user") == 15
