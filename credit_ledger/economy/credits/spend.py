from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.repo.credit_balances_repo import CreditBalancesRepo
from credit_ledger.economy.credits.expiration import sweep
from credit_ledger.economy.credits.ledger import adjust_expiring, deduct_permanent, load_snapshot
from credit_ledger.economy.credits.rules import plan_spend, validate_amount
from credit_ledger.economy.credits.types import SpendResult

logger = structlog.get_logger(__name__)


async def spend(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    now_utc: datetime,
) -> SpendResult:
    validate_amount(amount)

    # every writer of this user's ledger queues behind this row lock
    balance = await CreditBalancesRepo.get_by_user_id_for_update(session, user_id)
    await sweep(session, user_id=user_id, now_utc=now_utc)
    snapshot = await load_snapshot(session, balance=balance, user_id=user_id, now_utc=now_utc)

    plan = plan_spend(snapshot, amount=amount)
    if not plan.allowed:
        logger.info(
            "credits_spend_rejected",
            user_id=user_id,
            requested=amount,
            available=snapshot.total,
            shortfall=plan.shortfall,
        )
        return SpendResult(
            allowed=False,
            requested=amount,
            remaining_total=snapshot.total,
            shortfall=plan.shortfall,
        )

    for adjustment in plan.batch_adjustments:
        await adjust_expiring(
            session,
            batch_id=adjustment.batch_id,
            new_amount=adjustment.new_amount,
            now_utc=now_utc,
        )

    if plan.permanent_debit > 0:
        await deduct_permanent(session, user_id=user_id, amount=plan.permanent_debit, now_utc=now_utc)

    remaining_total = snapshot.total - amount
    logger.info(
        "credits_spent",
        user_id=user_id,
        amount=amount,
        batches_touched=len(plan.batch_adjustments),
        permanent_debit=plan.permanent_debit,
        remaining_total=remaining_total,
    )
    return SpendResult(
        allowed=True,
        requested=amount,
        remaining_total=remaining_total,
        consumed_batch_ids=[adjustment.batch_id for adjustment in plan.batch_adjustments],
        permanent_debit=plan.permanent_debit,
    )
