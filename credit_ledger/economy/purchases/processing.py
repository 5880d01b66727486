from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.db.repo.purchases_repo import PurchasesRepo
from credit_ledger.economy.credits.constants import BATCH_SOURCE_PURCHASE
from credit_ledger.economy.purchases.catalog import get_plan, normalize_product_id
from credit_ledger.economy.purchases.constants import (
    ALREADY_PROCESSED,
    CREDIT_STATUS_GRANTED,
    PURCHASE_STATUS_COMPLETED,
    RESTORATION_REASON_INITIAL_PURCHASE,
    RESTORATION_STATUS_FAILED,
    RESTORATION_STATUS_SUCCESS,
)
from credit_ledger.economy.purchases.errors import PurchaseValidationError
from credit_ledger.economy.purchases.grants import grant_plan_credits, mark_credit_failed, write_restoration
from credit_ledger.economy.purchases.recorder import record_purchase
from credit_ledger.economy.purchases.rules import is_purchase_credited
from credit_ledger.economy.purchases.types import (
    PurchaseProcessResult,
    ReceiptProcessResult,
    ReceiptTransaction,
)

logger = structlog.get_logger(__name__)


async def process_purchase(
    session: AsyncSession,
    *,
    user_id: str,
    product_id: str,
    transaction_id: str,
    purchase_date: datetime,
    now_utc: datetime,
    price: Decimal | None = None,
    currency: str | None = None,
) -> PurchaseProcessResult:
    plan = get_plan(product_id)
    if plan is None or plan.credits <= 0:
        return PurchaseProcessResult(
            transaction_id=transaction_id,
            product_id=product_id,
            credited=0,
            status="no_credits",
        )

    if not transaction_id or not transaction_id.strip():
        raise PurchaseValidationError("transaction_id is required")
    transaction_id = transaction_id.strip()

    await record_purchase(
        session,
        user_id=user_id,
        product_id=product_id,
        transaction_id=transaction_id,
        purchase_date=purchase_date,
        price=price,
        currency=currency,
        status=PURCHASE_STATUS_COMPLETED,
        now_utc=now_utc,
    )
    purchase = await PurchasesRepo.get_by_transaction_id_for_update(session, transaction_id)
    if purchase is None:
        raise PurchaseValidationError(f"purchase record missing: {transaction_id}")

    if purchase.user_id != user_id:
        logger.warning(
            "purchase_credit_rejected_foreign_user",
            user_id=user_id,
            owner_user_id=purchase.user_id,
            transaction_id=transaction_id,
        )
        return PurchaseProcessResult(
            transaction_id=transaction_id,
            product_id=product_id,
            credited=0,
            status="rejected",
            error="transaction belongs to another user",
        )

    if is_purchase_credited(purchase):
        return PurchaseProcessResult(
            transaction_id=transaction_id,
            product_id=product_id,
            credited=0,
            status="already_processed",
            error=ALREADY_PROCESSED,
        )

    # the stored record decides the plan, not the caller's product id
    if normalize_product_id(purchase.product_id) != plan.product_id:
        logger.warning(
            "purchase_product_mismatch",
            user_id=user_id,
            transaction_id=transaction_id,
            requested_product_id=product_id,
            recorded_product_id=purchase.product_id,
        )
        product_id = purchase.product_id
        plan = get_plan(purchase.product_id)
        if plan is None or plan.credits <= 0:
            return PurchaseProcessResult(
                transaction_id=transaction_id,
                product_id=product_id,
                credited=0,
                status="no_credits",
            )

    try:
        async with session.begin_nested():
            await grant_plan_credits(
                session,
                user_id=user_id,
                plan=plan,
                source=BATCH_SOURCE_PURCHASE,
                now_utc=now_utc,
            )
            purchase.status = PURCHASE_STATUS_COMPLETED
            purchase.processed_at = now_utc
            purchase.credit_status = CREDIT_STATUS_GRANTED
            purchase.updated_at = now_utc
            await write_restoration(
                session,
                user_id=user_id,
                product_id=plan.product_id,
                transaction_id=transaction_id,
                expected_credits=plan.credits,
                actual_credits_added=plan.credits,
                reason=RESTORATION_REASON_INITIAL_PURCHASE,
                status=RESTORATION_STATUS_SUCCESS,
                now_utc=now_utc,
            )
    except SQLAlchemyError as exc:
        logger.exception(
            "purchase_credit_failed",
            user_id=user_id,
            product_id=product_id,
            transaction_id=transaction_id,
        )
        await mark_credit_failed(session, purchase=purchase, now_utc=now_utc)
        await write_restoration(
            session,
            user_id=user_id,
            product_id=plan.product_id,
            transaction_id=transaction_id,
            expected_credits=plan.credits,
            actual_credits_added=0,
            reason=RESTORATION_REASON_INITIAL_PURCHASE,
            status=RESTORATION_STATUS_FAILED,
            now_utc=now_utc,
        )
        return PurchaseProcessResult(
            transaction_id=transaction_id,
            product_id=product_id,
            credited=0,
            status="failed",
            error=exc.__class__.__name__,
        )

    logger.info(
        "purchase_credited",
        user_id=user_id,
        product_id=plan.product_id,
        transaction_id=transaction_id,
        credits=plan.credits,
        validity_days=plan.validity_days,
    )
    return PurchaseProcessResult(
        transaction_id=transaction_id,
        product_id=product_id,
        credited=plan.credits,
        status="credited",
    )


async def process_receipt(
    session: AsyncSession,
    *,
    user_id: str,
    product_id: str,
    transactions: list[ReceiptTransaction],
    now_utc: datetime,
) -> ReceiptProcessResult:
    wanted = normalize_product_id(product_id)
    result = ReceiptProcessResult()

    for transaction in transactions:
        if normalize_product_id(transaction.product_id) != wanted:
            continue

        try:
            item = await process_purchase(
                session,
                user_id=user_id,
                product_id=transaction.product_id,
                transaction_id=transaction.transaction_id,
                purchase_date=transaction.purchase_date,
                price=transaction.price,
                currency=transaction.currency,
                now_utc=now_utc,
            )
        except PurchaseValidationError as exc:
            item = PurchaseProcessResult(
                transaction_id=transaction.transaction_id,
                product_id=transaction.product_id,
                credited=0,
                status="invalid",
                error=str(exc),
            )

        result.processed.append(item)
        result.total_credited += item.credited
        if item.status in {"failed", "invalid", "rejected"}:
            result.failed_transaction_ids.append(item.transaction_id)

    logger.info(
        "purchase_receipt_processed",
        user_id=user_id,
        product_id=product_id,
        transactions=len(result.processed),
        total_credited=result.total_credited,
        failed=len(result.failed_transaction_ids),
    )
    return result
