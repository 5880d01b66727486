from __future__ import annotations

from datetime import datetime, timedelta, timezone

from credit_ledger.db.session import SessionLocal
from credit_ledger.economy.credits.service import CreditService

UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _seed_credits(
    user_id: str,
    *,
    permanent: int = 0,
    batches: tuple[tuple[int, int], ...] = (),
    now_utc: datetime = NOW,
) -> list[int]:
    """Seed permanent credits and ``(amount, expires_in_days)`` batches; returns batch ids."""
    batch_ids: list[int] = []
    async with SessionLocal.begin() as session:
        if permanent > 0:
            await CreditService.add_permanent(session, user_id=user_id, amount=permanent, now_utc=now_utc)
        for amount, days in batches:
            batch = await CreditService.add_expiring(
                session,
                user_id=user_id,
                amount=amount,
                expires_at=now_utc + timedelta(days=days),
                now_utc=now_utc,
            )
            batch_ids.append(batch.id)
    return batch_ids


async def _total(user_id: str, *, now_utc: datetime = NOW) -> int:
    async with SessionLocal.begin() as session:
        balance = await CreditService.get_balance(session, user_id=user_id, now_utc=now_utc)
    return balance.total
