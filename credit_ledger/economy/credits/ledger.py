from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.credit_balances import CreditBalance
from credit_ledger.db.models.expiring_credit_batches import ExpiringCreditBatch
from credit_ledger.db.repo.credit_balances_repo import CreditBalancesRepo
from credit_ledger.db.repo.expiring_batches_repo import ExpiringBatchesRepo
from credit_ledger.economy.credits.constants import BATCH_SOURCE_MANUAL_GRANT, BATCH_SOURCES
from credit_ledger.economy.credits.errors import CreditValidationError, InsufficientCreditsError
from credit_ledger.economy.credits.expiration import sweep
from credit_ledger.economy.credits.rules import validate_amount
from credit_ledger.economy.credits.types import BatchSnapshot, CreditBalanceView, LedgerSnapshot


def _touch(balance: CreditBalance, now_utc: datetime) -> None:
    balance.updated_at = now_utc
    balance.version += 1


async def get_balance(session: AsyncSession, *, user_id: str, now_utc: datetime) -> CreditBalanceView:
    await sweep(session, user_id=user_id, now_utc=now_utc)

    balance = await CreditBalancesRepo.get_by_user_id(session, user_id)
    expiring_total = await ExpiringBatchesRepo.sum_live_by_user(session, user_id=user_id, now_utc=now_utc)
    return CreditBalanceView(
        user_id=user_id,
        permanent=balance.permanent_amount if balance is not None else 0,
        expiring_total=expiring_total,
    )


async def load_snapshot(
    session: AsyncSession,
    *,
    balance: CreditBalance | None,
    user_id: str,
    now_utc: datetime,
) -> LedgerSnapshot:
    batches = await list_expiring(session, user_id=user_id, now_utc=now_utc)
    return LedgerSnapshot(
        permanent_amount=balance.permanent_amount if balance is not None else 0,
        batches=[
            BatchSnapshot(batch_id=batch.id, amount=batch.amount, expires_at=batch.expires_at)
            for batch in batches
        ],
    )


async def add_permanent(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    now_utc: datetime,
) -> CreditBalance:
    validate_amount(amount)

    balance = await CreditBalancesRepo.get_or_create_for_update(session, user_id=user_id, now_utc=now_utc)
    balance.permanent_amount += amount
    _touch(balance, now_utc)
    await session.flush()
    return balance


async def add_expiring(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    expires_at: datetime,
    now_utc: datetime,
    source: str = BATCH_SOURCE_MANUAL_GRANT,
) -> ExpiringCreditBatch:
    validate_amount(amount)
    if expires_at <= now_utc:
        raise CreditValidationError("expires_at must be in the future")
    if source not in BATCH_SOURCES:
        raise CreditValidationError(f"unknown batch source: {source}")

    # the balance row doubles as the per-user lock, so it exists before any batch
    balance = await CreditBalancesRepo.get_or_create_for_update(session, user_id=user_id, now_utc=now_utc)
    _touch(balance, now_utc)

    return await ExpiringBatchesRepo.create(
        session,
        batch=ExpiringCreditBatch(
            user_id=user_id,
            amount=amount,
            original_amount=amount,
            source=source,
            expires_at=expires_at,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )


async def list_expiring(
    session: AsyncSession,
    *,
    user_id: str,
    now_utc: datetime,
) -> list[ExpiringCreditBatch]:
    return await ExpiringBatchesRepo.list_live_by_user(session, user_id=user_id, now_utc=now_utc)


async def adjust_expiring(
    session: AsyncSession,
    *,
    batch_id: int,
    new_amount: int,
    now_utc: datetime,
) -> ExpiringCreditBatch | None:
    if isinstance(new_amount, bool) or not isinstance(new_amount, int) or new_amount < 0:
        raise CreditValidationError("new_amount must be a non-negative integer")

    batch = await ExpiringBatchesRepo.get_by_id(session, batch_id)
    if batch is None:
        raise CreditValidationError(f"expiring batch not found: {batch_id}")

    # serialize with spends of the same user, then re-read the batch under the lock
    await CreditBalancesRepo.get_by_user_id_for_update(session, batch.user_id)
    batch = await ExpiringBatchesRepo.get_by_id_for_update(session, batch_id)
    if batch is None:
        raise CreditValidationError(f"expiring batch not found: {batch_id}")

    if new_amount == 0:
        await ExpiringBatchesRepo.delete(session, batch=batch)
        return None

    batch.amount = new_amount
    batch.updated_at = now_utc
    await session.flush()
    return batch


async def deduct_permanent(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    now_utc: datetime,
) -> CreditBalance:
    validate_amount(amount)

    balance = await CreditBalancesRepo.get_by_user_id_for_update(session, user_id)
    available = balance.permanent_amount if balance is not None else 0
    if balance is None or available < amount:
        raise InsufficientCreditsError(requested=amount, available=available)

    balance.permanent_amount -= amount
    _touch(balance, now_utc)
    await session.flush()
    return balance
