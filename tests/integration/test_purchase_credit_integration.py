from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlalchemy import select

from credit_ledger.db.models.credit_restorations import CreditRestoration
from credit_ledger.db.repo.purchases_repo import PurchasesRepo
from credit_ledger.db.session import SessionLocal
from credit_ledger.economy.credits.service import CreditService
from credit_ledger.economy.purchases.service import PurchaseService
from credit_ledger.economy.purchases.types import OwnedProduct
from tests.integration.ledger_fixtures import NOW, _total


async def _process(transaction_id: str, *, user_id: str = "buyer", product_id: str = "weekly", now_utc=NOW):
    async with SessionLocal.begin() as session:
        return await PurchaseService.process_purchase(
            session,
            user_id=user_id,
            product_id=product_id,
            transaction_id=transaction_id,
            purchase_date=now_utc,
            now_utc=now_utc,
        )


async def test_weekly_purchase_lifecycle() -> None:
    assert await _total("buyer") == 0

    first = await _process("tx1")
    assert first.credited == 100
    assert await _total("buyer") == 100

    async with SessionLocal.begin() as session:
        spent = await CreditService.spend(session, user_id="buyer", amount=30, now_utc=NOW)
    assert spent.allowed is True
    assert await _total("buyer") == 70

    replay = await _process("tx1")
    assert replay.credited == 0
    assert replay.error == "already processed"

    assert await _total("buyer", now_utc=NOW + timedelta(days=8)) == 0


async def test_processing_writes_purchase_state_and_audit_row() -> None:
    await _process("tx-audit", product_id="Monthly")

    async with SessionLocal.begin() as session:
        purchase = await PurchasesRepo.get_by_transaction_id(session, "tx-audit")
        rows = list((await session.execute(select(CreditRestoration))).scalars().all())

    assert purchase is not None
    assert purchase.credit_status == "granted"
    assert purchase.processed_at is not None
    assert [(row.reason, row.status, row.actual_credits_added) for row in rows] == [
        ("initial_purchase", "success", 400)
    ]


async def test_transaction_of_another_user_is_not_credited() -> None:
    await _process("tx-shared", user_id="owner")

    result = await _process("tx-shared", user_id="intruder")

    assert result.status == "rejected"
    assert await _total("intruder") == 0


async def test_verification_restores_missed_purchase_once() -> None:
    owned = [OwnedProduct(product_id="weekly", purchase_date=NOW - timedelta(hours=3), transaction_id="tx-missed")]

    async with SessionLocal.begin() as session:
        first = await PurchaseService.verify_and_restore(session, user_id="restorer", owned_products=owned, now_utc=NOW)
    async with SessionLocal.begin() as session:
        second = await PurchaseService.verify_and_restore(session, user_id="restorer", owned_products=owned, now_utc=NOW)

    assert first.restored == 100
    assert second.restored == 0
    assert await _total("restorer") == 100

    async with SessionLocal.begin() as session:
        stats = await PurchaseService.get_restoration_stats(session, user_id="restorer")
    assert (stats.total_restorations, stats.successful_restorations, stats.total_credits_restored) == (1, 1, 100)


async def test_verification_ignores_stale_purchase() -> None:
    owned = [OwnedProduct(product_id="yearly", purchase_date=NOW - timedelta(hours=30), transaction_id="tx-stale")]

    async with SessionLocal.begin() as session:
        result = await PurchaseService.verify_and_restore(session, user_id="late", owned_products=owned, now_utc=NOW)
        rows = list((await session.execute(select(CreditRestoration))).scalars().all())

    assert result.restored == 0
    assert rows == []


async def test_manual_restore_of_recorded_purchase() -> None:
    async with SessionLocal.begin() as session:
        await PurchaseService.record_purchase(
            session,
            user_id="support-case",
            product_id="monthly",
            transaction_id="tx-old",
            purchase_date=NOW - timedelta(days=20),
            price=None,
            currency="INR",
            status="completed",
            now_utc=NOW - timedelta(days=20),
        )
    async with SessionLocal.begin() as session:
        result = await PurchaseService.restore_transaction(
            session,
            user_id="support-case",
            transaction_id="tx-old",
            now_utc=NOW,
        )

    assert result.credited == 400
    assert await _total("support-case") == 400


async def _verify(transaction_id: str, *, user_id: str = "buyer"):
    async with SessionLocal.begin() as session:
        return await PurchaseService.verify_and_restore(
            session,
            user_id=user_id,
            owned_products=[OwnedProduct(product_id="weekly", purchase_date=NOW, transaction_id=transaction_id)],
            now_utc=NOW,
        )


async def _success_rows(transaction_id: str) -> list[CreditRestoration]:
    async with SessionLocal.begin() as session:
        stmt = select(CreditRestoration).where(
            CreditRestoration.transaction_id == transaction_id,
            CreditRestoration.status == "success",
        )
        return list((await session.execute(stmt)).scalars().all())


async def test_processing_and_verification_race_credits_once() -> None:
    await asyncio.gather(_process("tx-race"), _verify("tx-race"))

    assert await _total("buyer") == 100
    assert len(await _success_rows("tx-race")) == 1


async def test_parallel_verifications_credit_once() -> None:
    await asyncio.gather(_verify("tx-twice"), _verify("tx-twice"))

    assert await _total("buyer") == 100
    assert len(await _success_rows("tx-twice")) == 1

    async with SessionLocal.begin() as session:
        purchase = await PurchasesRepo.get_by_transaction_id(session, "tx-twice")
    assert purchase is not None
    assert purchase.restored is True
