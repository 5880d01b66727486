from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.repo.purchases_repo import PurchasesRepo
from credit_ledger.economy.purchases.constants import (
    CREDIT_STATUS_GRANTED,
    PURCHASE_STATUS_COMPLETED,
    PURCHASE_STATUSES,
)
from credit_ledger.economy.purchases.errors import PurchaseValidationError

logger = structlog.get_logger(__name__)


async def record_purchase(
    session: AsyncSession,
    *,
    user_id: str,
    product_id: str,
    transaction_id: str,
    purchase_date: datetime,
    price: Decimal | None,
    currency: str | None,
    status: str,
    now_utc: datetime,
) -> bool:
    """Insert the purchase once; returns ``False`` when the transaction already exists.

    An existing record is never overwritten here, processing owns its state.
    """
    if not transaction_id or not transaction_id.strip():
        raise PurchaseValidationError("transaction_id is required")
    if not product_id or not product_id.strip():
        raise PurchaseValidationError("product_id is required")
    if status not in PURCHASE_STATUSES:
        raise PurchaseValidationError(f"unknown purchase status: {status}")

    created = await PurchasesRepo.insert_if_absent(
        session,
        transaction_id=transaction_id.strip(),
        user_id=user_id,
        product_id=product_id.strip(),
        purchase_date=purchase_date,
        price=price,
        currency=currency.upper() if currency else None,
        status=status,
        now_utc=now_utc,
    )
    if created:
        logger.info(
            "purchase_recorded",
            user_id=user_id,
            product_id=product_id,
            transaction_id=transaction_id,
            status=status,
        )
    return created


async def is_processed(session: AsyncSession, *, transaction_id: str) -> bool:
    purchase = await PurchasesRepo.get_by_transaction_id(session, transaction_id)
    if purchase is None:
        return False
    return purchase.status == PURCHASE_STATUS_COMPLETED and (
        purchase.processed_at is not None
        or purchase.restored
        or purchase.credit_status == CREDIT_STATUS_GRANTED
    )
