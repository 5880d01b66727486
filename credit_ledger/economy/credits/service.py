from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.economy.credits.constants import BATCH_SOURCE_MANUAL_GRANT
from credit_ledger.economy.credits.costs import charge_for_action, get_action_cost
from credit_ledger.economy.credits.errors import CreditValidationError
from credit_ledger.economy.credits.expiration import sweep
from credit_ledger.economy.credits.ledger import (
    add_expiring,
    add_permanent,
    adjust_expiring,
    deduct_permanent,
    get_balance,
    list_expiring,
)
from credit_ledger.economy.credits.spend import spend
from credit_ledger.economy.credits.types import CreditGrantResult

logger = structlog.get_logger(__name__)


async def grant_permanent(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    now_utc: datetime,
) -> CreditGrantResult:
    await add_permanent(session, user_id=user_id, amount=amount, now_utc=now_utc)
    balance = await get_balance(session, user_id=user_id, now_utc=now_utc)
    logger.info("credits_granted", user_id=user_id, amount=amount, kind="permanent", total=balance.total)
    return CreditGrantResult(
        user_id=user_id,
        amount=amount,
        expires_at=None,
        batch_id=None,
        total=balance.total,
    )


async def grant_expiring(
    session: AsyncSession,
    *,
    user_id: str,
    amount: int,
    validity_days: int,
    now_utc: datetime,
    source: str = BATCH_SOURCE_MANUAL_GRANT,
) -> CreditGrantResult:
    if isinstance(validity_days, bool) or not isinstance(validity_days, int) or validity_days <= 0:
        raise CreditValidationError("validity_days must be a positive integer")

    expires_at = now_utc + timedelta(days=validity_days)
    batch = await add_expiring(
        session,
        user_id=user_id,
        amount=amount,
        expires_at=expires_at,
        now_utc=now_utc,
        source=source,
    )
    balance = await get_balance(session, user_id=user_id, now_utc=now_utc)
    logger.info(
        "credits_granted",
        user_id=user_id,
        amount=amount,
        kind="expiring",
        batch_id=batch.id,
        expires_at=expires_at.isoformat(),
        total=balance.total,
    )
    return CreditGrantResult(
        user_id=user_id,
        amount=amount,
        expires_at=expires_at,
        batch_id=batch.id,
        total=balance.total,
    )


class CreditService:
    get_balance = staticmethod(get_balance)
    add_permanent = staticmethod(add_permanent)
    add_expiring = staticmethod(add_expiring)
    list_expiring = staticmethod(list_expiring)
    adjust_expiring = staticmethod(adjust_expiring)
    deduct_permanent = staticmethod(deduct_permanent)
    sweep = staticmethod(sweep)
    spend = staticmethod(spend)
    get_action_cost = staticmethod(get_action_cost)
    charge_for_action = staticmethod(charge_for_action)
    grant_permanent = staticmethod(grant_permanent)
    grant_expiring = staticmethod(grant_expiring)
