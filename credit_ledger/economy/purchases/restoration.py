from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config import get_settings
from credit_ledger.db.models.credit_restorations import CreditRestoration
from credit_ledger.db.models.purchases import Purchase
from credit_ledger.db.repo.purchases_repo import PurchasesRepo
from credit_ledger.db.repo.restorations_repo import RestorationsRepo
from credit_ledger.economy.credits.constants import BATCH_SOURCE_MANUAL_RESTORE, BATCH_SOURCE_VERIFICATION
from credit_ledger.economy.credits.ledger import get_balance
from credit_ledger.economy.purchases.catalog import PlanSpec, get_plan
from credit_ledger.economy.purchases.constants import (
    CREDIT_STATUS_GRANTED,
    MAX_CREDIT_RETRY_ATTEMPTS,
    PURCHASE_STATUS_COMPLETED,
    RESTORATION_REASON_MANUAL_RESTORE,
    RESTORATION_REASON_VERIFICATION,
    RESTORATION_STATUS_FAILED,
    RESTORATION_STATUS_SUCCESS,
)
from credit_ledger.economy.purchases.errors import (
    ProductNotFoundError,
    PurchaseAlreadyProcessedError,
    PurchaseNotCompletedError,
    PurchaseNotFoundError,
    PurchaseOwnershipError,
)
from credit_ledger.economy.purchases.grants import grant_plan_credits, mark_credit_failed, write_restoration
from credit_ledger.economy.purchases.rules import (
    derive_transaction_id,
    is_fresh,
    is_manually_restorable,
    is_purchase_credited,
)
from credit_ledger.economy.purchases.types import (
    OwnedProduct,
    OwnedPurchaseStatus,
    PurchaseProcessResult,
    PurchaseSummary,
    RestorationDetail,
    RestorationStats,
    RetryResult,
    VerificationResult,
)

logger = structlog.get_logger(__name__)


async def is_transaction_restored(session: AsyncSession, *, user_id: str, transaction_id: str) -> bool:
    if await RestorationsRepo.has_successful_for_transaction(
        session,
        user_id=user_id,
        transaction_id=transaction_id,
    ):
        return True

    purchase = await PurchasesRepo.get_by_transaction_id(session, transaction_id)
    return purchase is not None and is_purchase_credited(purchase)


async def _restore_owned_product(
    session: AsyncSession,
    *,
    user_id: str,
    plan: PlanSpec,
    owned: OwnedProduct,
    transaction_id: str,
    now_utc: datetime,
) -> RestorationDetail:
    await PurchasesRepo.insert_if_absent(
        session,
        transaction_id=transaction_id,
        user_id=user_id,
        product_id=plan.product_id,
        purchase_date=owned.purchase_date,
        price=None,
        currency=None,
        status=PURCHASE_STATUS_COMPLETED,
        now_utc=now_utc,
    )
    # purchase row first, balance row second; checks below run under this lock
    purchase = await PurchasesRepo.get_by_transaction_id_for_update(session, transaction_id)
    if purchase is None:
        return RestorationDetail(
            product_id=owned.product_id,
            transaction_id=transaction_id,
            status="error",
        )
    if purchase.user_id != user_id:
        return RestorationDetail(
            product_id=owned.product_id,
            transaction_id=transaction_id,
            status="error:foreign_transaction",
        )
    if is_purchase_credited(purchase):
        return RestorationDetail(
            product_id=owned.product_id,
            transaction_id=transaction_id,
            status="skipped:already_processed",
        )

    plan = get_plan(purchase.product_id)
    if plan is None or plan.credits <= 0:
        return RestorationDetail(
            product_id=owned.product_id,
            transaction_id=transaction_id,
            status="skipped:no_credits",
        )

    try:
        async with session.begin_nested():
            await grant_plan_credits(
                session,
                user_id=user_id,
                plan=plan,
                source=BATCH_SOURCE_VERIFICATION,
                now_utc=now_utc,
            )
            purchase.restored = True
            purchase.credit_status = CREDIT_STATUS_GRANTED
            purchase.updated_at = now_utc
            await write_restoration(
                session,
                user_id=user_id,
                product_id=plan.product_id,
                transaction_id=transaction_id,
                expected_credits=plan.credits,
                actual_credits_added=plan.credits,
                reason=RESTORATION_REASON_VERIFICATION,
                status=RESTORATION_STATUS_SUCCESS,
                now_utc=now_utc,
            )
    except SQLAlchemyError:
        logger.exception(
            "credit_verification_item_failed",
            user_id=user_id,
            product_id=plan.product_id,
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
            reason=RESTORATION_REASON_VERIFICATION,
            status=RESTORATION_STATUS_FAILED,
            now_utc=now_utc,
        )
        return RestorationDetail(
            product_id=owned.product_id,
            transaction_id=transaction_id,
            status="error",
        )

    return RestorationDetail(
        product_id=owned.product_id,
        transaction_id=transaction_id,
        status="restored",
        credits=plan.credits,
    )


async def verify_and_restore(
    session: AsyncSession,
    *,
    user_id: str,
    owned_products: list[OwnedProduct],
    now_utc: datetime,
) -> VerificationResult:
    settings = get_settings()
    result = VerificationResult()

    before = await get_balance(session, user_id=user_id, now_utc=now_utc)

    for owned in owned_products:
        plan = get_plan(owned.product_id)
        if plan is None or plan.credits <= 0:
            result.details.append(
                RestorationDetail(
                    product_id=owned.product_id,
                    transaction_id=owned.transaction_id,
                    status="skipped:no_credits",
                )
            )
            continue

        if not is_fresh(
            owned.purchase_date,
            now_utc=now_utc,
            window_hours=settings.restoration_freshness_hours,
        ):
            result.details.append(
                RestorationDetail(
                    product_id=owned.product_id,
                    transaction_id=owned.transaction_id,
                    status="skipped:stale",
                )
            )
            continue

        transaction_id = derive_transaction_id(
            transaction_id=owned.transaction_id,
            product_id=plan.product_id,
            purchase_date=owned.purchase_date,
            allow_synthesized=settings.allow_synthesized_transaction_ids,
        )
        if transaction_id is None:
            result.errors += 1
            result.details.append(
                RestorationDetail(
                    product_id=owned.product_id,
                    transaction_id=None,
                    status="error:missing_transaction_id",
                )
            )
            continue

        if await is_transaction_restored(session, user_id=user_id, transaction_id=transaction_id):
            result.details.append(
                RestorationDetail(
                    product_id=owned.product_id,
                    transaction_id=transaction_id,
                    status="skipped:already_restored",
                )
            )
            continue

        detail = await _restore_owned_product(
            session,
            user_id=user_id,
            plan=plan,
            owned=owned,
            transaction_id=transaction_id,
            now_utc=now_utc,
        )
        if detail.status.startswith("error"):
            result.errors += 1
        result.details.append(detail)

    after = await get_balance(session, user_id=user_id, now_utc=now_utc)
    result.restored = max(0, after.total - before.total)

    logger.info(
        "credit_verification_finished",
        user_id=user_id,
        owned_products=len(owned_products),
        restored=result.restored,
        errors=result.errors,
    )
    return result


async def restore_transaction(
    session: AsyncSession,
    *,
    user_id: str,
    transaction_id: str,
    now_utc: datetime,
) -> PurchaseProcessResult:
    purchase = await PurchasesRepo.get_by_transaction_id_for_update(session, transaction_id)
    if purchase is None:
        raise PurchaseNotFoundError(transaction_id)
    if purchase.user_id != user_id:
        raise PurchaseOwnershipError(transaction_id)
    if is_purchase_credited(purchase):
        raise PurchaseAlreadyProcessedError(transaction_id)
    if not is_manually_restorable(purchase):
        raise PurchaseNotCompletedError(transaction_id)

    plan = get_plan(purchase.product_id)
    if plan is None or plan.credits <= 0:
        raise ProductNotFoundError(purchase.product_id)

    await grant_plan_credits(
        session,
        user_id=user_id,
        plan=plan,
        source=BATCH_SOURCE_MANUAL_RESTORE,
        now_utc=now_utc,
    )
    purchase.restored = True
    purchase.credit_status = CREDIT_STATUS_GRANTED
    purchase.updated_at = now_utc
    await write_restoration(
        session,
        user_id=user_id,
        product_id=plan.product_id,
        transaction_id=transaction_id,
        expected_credits=plan.credits,
        actual_credits_added=plan.credits,
        reason=RESTORATION_REASON_MANUAL_RESTORE,
        status=RESTORATION_STATUS_SUCCESS,
        now_utc=now_utc,
    )

    logger.info(
        "purchase_manually_restored",
        user_id=user_id,
        product_id=plan.product_id,
        transaction_id=transaction_id,
        credits=plan.credits,
    )
    return PurchaseProcessResult(
        transaction_id=transaction_id,
        product_id=purchase.product_id,
        credited=plan.credits,
        status="restored",
    )


async def _retry_single_purchase(
    session: AsyncSession,
    *,
    purchase: Purchase,
    plan: PlanSpec,
    now_utc: datetime,
) -> bool:
    try:
        async with session.begin_nested():
            await grant_plan_credits(
                session,
                user_id=purchase.user_id,
                plan=plan,
                source=BATCH_SOURCE_VERIFICATION,
                now_utc=now_utc,
            )
            purchase.processed_at = now_utc
            purchase.credit_status = CREDIT_STATUS_GRANTED
            purchase.updated_at = now_utc
            await write_restoration(
                session,
                user_id=purchase.user_id,
                product_id=plan.product_id,
                transaction_id=purchase.transaction_id,
                expected_credits=plan.credits,
                actual_credits_added=plan.credits,
                reason=RESTORATION_REASON_VERIFICATION,
                status=RESTORATION_STATUS_SUCCESS,
                now_utc=now_utc,
            )
    except SQLAlchemyError:
        logger.exception(
            "purchase_credit_retry_failed",
            user_id=purchase.user_id,
            transaction_id=purchase.transaction_id,
        )
        await mark_credit_failed(session, purchase=purchase, now_utc=now_utc)
        await write_restoration(
            session,
            user_id=purchase.user_id,
            product_id=plan.product_id,
            transaction_id=purchase.transaction_id,
            expected_credits=plan.credits,
            actual_credits_added=0,
            reason=RESTORATION_REASON_VERIFICATION,
            status=RESTORATION_STATUS_FAILED,
            now_utc=now_utc,
        )
        return False
    return True


async def retry_failed_credits(session: AsyncSession, *, user_id: str, now_utc: datetime) -> RetryResult:
    result = RetryResult()
    purchases = await PurchasesRepo.list_failed_credit_by_user(session, user_id=user_id)

    for purchase in purchases:
        plan = get_plan(purchase.product_id)
        if plan is None or plan.credits <= 0:
            result.review.append(purchase.transaction_id)
            continue

        failures = await RestorationsRepo.count_failed_for_transaction(
            session,
            transaction_id=purchase.transaction_id,
        )
        if failures >= MAX_CREDIT_RETRY_ATTEMPTS:
            result.review.append(purchase.transaction_id)
            continue

        locked = await PurchasesRepo.get_by_transaction_id_for_update(session, purchase.transaction_id)
        if locked is None or is_purchase_credited(locked):
            continue

        result.retried += 1
        if await _retry_single_purchase(session, purchase=locked, plan=plan, now_utc=now_utc):
            result.credited += plan.credits
        else:
            result.failed += 1

    logger.info(
        "purchase_credit_retry_finished",
        user_id=user_id,
        retried=result.retried,
        credited=result.credited,
        failed=result.failed,
        review=len(result.review),
    )
    return result


async def summarize_owned_purchases(
    session: AsyncSession,
    *,
    user_id: str,
    owned_products: list[OwnedProduct],
    now_utc: datetime,
) -> PurchaseSummary:
    settings = get_settings()
    balance = await get_balance(session, user_id=user_id, now_utc=now_utc)
    summary = PurchaseSummary(total_credits=balance.total)

    for owned in owned_products:
        plan = get_plan(owned.product_id)
        transaction_id = derive_transaction_id(
            transaction_id=owned.transaction_id,
            product_id=plan.product_id if plan is not None else owned.product_id,
            purchase_date=owned.purchase_date,
            allow_synthesized=settings.allow_synthesized_transaction_ids,
        )
        purchase = (
            await PurchasesRepo.get_by_transaction_id(session, transaction_id)
            if transaction_id is not None
            else None
        )
        summary.purchases.append(
            OwnedPurchaseStatus(
                product_id=owned.product_id,
                purchase_date=owned.purchase_date,
                expected_credits=plan.credits if plan is not None else 0,
                transaction_id=transaction_id,
                recorded=purchase is not None,
                credit_status=purchase.credit_status if purchase is not None else None,
                restored=bool(purchase.restored) if purchase is not None else False,
            )
        )
    return summary


async def get_restoration_stats(session: AsyncSession, *, user_id: str) -> RestorationStats:
    total, successful, credits_restored, last_created_at = await RestorationsRepo.get_stats_by_user(
        session,
        user_id=user_id,
    )
    return RestorationStats(
        total_restorations=total,
        successful_restorations=successful,
        total_credits_restored=credits_restored,
        last_restoration_date=last_created_at,
    )


async def list_purchases(session: AsyncSession, *, user_id: str, limit: int = 100) -> list[Purchase]:
    return await PurchasesRepo.list_by_user(session, user_id=user_id, limit=limit)


async def list_restorations(
    session: AsyncSession,
    *,
    user_id: str,
    limit: int = 100,
) -> list[CreditRestoration]:
    return await RestorationsRepo.list_by_user(session, user_id=user_id, limit=limit)
