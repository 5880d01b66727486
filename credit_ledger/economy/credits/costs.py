from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.economy.credits.errors import CreditValidationError, InsufficientCreditsError
from credit_ledger.economy.credits.spend import spend
from credit_ledger.economy.credits.types import SpendResult

ACTION_COSTS: dict[str, int] = {
    "OCR_SCAN": 1,
    "APPEND_SCAN": 1,
    "AI_ANSWER": 1,
    "NOTE_CHAT": 1,
    "QUIZ_GENERATION": 2,
    "FLASH_CARD_GENERATION": 2,
    "MIND_MAP_GENERATION": 2,
    "ENHANCE_NOTES": 2,
}


def get_action_cost(action_code: str) -> int:
    cost = ACTION_COSTS.get(action_code.strip().upper())
    if cost is None:
        raise CreditValidationError(f"unknown paid action: {action_code}")
    return cost


async def charge_for_action(
    session: AsyncSession,
    *,
    user_id: str,
    action_code: str,
    now_utc: datetime,
) -> SpendResult:
    """Debit the cost of a paid action, raising when the user cannot afford it.

    Callers perform the action only after this returns; an abandoned action is
    not refunded here.
    """
    cost = get_action_cost(action_code)
    result = await spend(session, user_id=user_id, amount=cost, now_utc=now_utc)
    if not result.allowed:
        raise InsufficientCreditsError(requested=cost, available=result.remaining_total)
    return result
