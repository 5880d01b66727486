from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.models.credit_restorations import CreditRestoration
from credit_ledger.db.models.expiring_credit_batches import ExpiringCreditBatch
from credit_ledger.db.models.purchases import Purchase
from credit_ledger.db.repo.restorations_repo import RestorationsRepo
from credit_ledger.economy.credits.ledger import add_expiring
from credit_ledger.economy.purchases.catalog import PlanSpec
from credit_ledger.economy.purchases.constants import CREDIT_STATUS_FAILED
from credit_ledger.economy.purchases.rules import credit_expires_at


async def grant_plan_credits(
    session: AsyncSession,
    *,
    user_id: str,
    plan: PlanSpec,
    source: str,
    now_utc: datetime,
) -> ExpiringCreditBatch:
    return await add_expiring(
        session,
        user_id=user_id,
        amount=plan.credits,
        expires_at=credit_expires_at(plan, now_utc=now_utc),
        now_utc=now_utc,
        source=source,
    )


async def write_restoration(
    session: AsyncSession,
    *,
    user_id: str,
    product_id: str,
    transaction_id: str,
    expected_credits: int,
    actual_credits_added: int,
    reason: str,
    status: str,
    now_utc: datetime,
) -> CreditRestoration:
    return await RestorationsRepo.create(
        session,
        restoration=CreditRestoration(
            user_id=user_id,
            product_id=product_id,
            transaction_id=transaction_id,
            expected_credits=expected_credits,
            actual_credits_added=actual_credits_added,
            reason=reason,
            status=status,
            created_at=now_utc,
        ),
    )


async def mark_credit_failed(
    session: AsyncSession,
    *,
    purchase: Purchase | None,
    now_utc: datetime,
) -> None:
    if purchase is None:
        return
    # the savepoint rollback expired the row, reload it before writing
    await session.refresh(purchase)
    purchase.credit_status = CREDIT_STATUS_FAILED
    purchase.updated_at = now_utc
    await session.flush()
