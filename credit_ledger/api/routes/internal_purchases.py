from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from credit_ledger.core.config import get_settings
from credit_ledger.db.session import SessionLocal
from credit_ledger.economy.purchases.errors import (
    ProductNotFoundError,
    PurchaseAlreadyProcessedError,
    PurchaseNotCompletedError,
    PurchaseNotFoundError,
    PurchaseOwnershipError,
    PurchaseValidationError,
)
from credit_ledger.economy.purchases.service import PurchaseService
from credit_ledger.economy.purchases.types import (
    OwnedProduct,
    PurchaseProcessResult,
    ReceiptProcessResult,
    ReceiptTransaction,
)
from credit_ledger.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

from .internal_purchases_models import (
    OwnedProductPayload,
    OwnedPurchaseStatusResponse,
    PurchaseHistoryItem,
    PurchaseProcessItem,
    PurchaseProcessRequest,
    PurchaseProcessResponse,
    PurchaseRecordRequest,
    PurchaseRecordResponse,
    PurchaseRetryResponse,
    PurchaseSummaryResponse,
    PurchaseUserRequest,
    PurchaseVerifyRequest,
    PurchaseVerifyResponse,
    RestorationDetailResponse,
    RestorationHistoryItem,
    RestorationStatsResponse,
)

router = APIRouter(tags=["internal", "purchases"])
logger = structlog.get_logger(__name__)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_purchases_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning(
            "internal_purchases_auth_failed",
            reason="invalid_credentials",
            client_ip=client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _as_owned_products(payload: list[OwnedProductPayload]) -> list[OwnedProduct]:
    return [
        OwnedProduct(
            product_id=item.product_id,
            purchase_date=item.purchase_date,
            transaction_id=item.transaction_id,
        )
        for item in payload
    ]


def _as_process_item(result: PurchaseProcessResult) -> PurchaseProcessItem:
    return PurchaseProcessItem(
        transaction_id=result.transaction_id,
        product_id=result.product_id,
        credited=result.credited,
        status=result.status,
        error=result.error,
    )


@router.post("/internal/purchases/record", response_model=PurchaseRecordResponse)
async def record_purchase(payload: PurchaseRecordRequest, request: Request) -> PurchaseRecordResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            created = await PurchaseService.record_purchase(
                session,
                user_id=payload.user_id,
                product_id=payload.product_id,
                transaction_id=payload.transaction_id,
                purchase_date=payload.purchase_date,
                price=payload.price,
                currency=payload.currency,
                status=payload.status.strip().lower(),
                now_utc=now_utc,
            )
    except PurchaseValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_PURCHASE_INVALID"}) from exc

    return PurchaseRecordResponse(transaction_id=payload.transaction_id, created=created)


@router.post("/internal/purchases/process", response_model=PurchaseProcessResponse)
async def process_purchase(payload: PurchaseProcessRequest, request: Request) -> PurchaseProcessResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            if payload.transactions is not None:
                result = await PurchaseService.process_receipt(
                    session,
                    user_id=payload.user_id,
                    product_id=payload.product_id,
                    transactions=[
                        ReceiptTransaction(
                            transaction_id=item.transaction_id,
                            product_id=item.product_id,
                            purchase_date=item.purchase_date,
                            price=item.price,
                            currency=item.currency,
                        )
                        for item in payload.transactions
                    ],
                    now_utc=now_utc,
                )
            else:
                single = await PurchaseService.process_purchase(
                    session,
                    user_id=payload.user_id,
                    product_id=payload.product_id,
                    transaction_id=payload.transaction_id or "",
                    purchase_date=payload.purchase_date or now_utc,
                    price=payload.price,
                    currency=payload.currency,
                    now_utc=now_utc,
                )
                result = ReceiptProcessResult(
                    total_credited=single.credited,
                    processed=[single],
                    failed_transaction_ids=(
                        [single.transaction_id] if single.status in {"failed", "rejected"} else []
                    ),
                )
    except PurchaseValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_PURCHASE_INVALID"}) from exc

    return PurchaseProcessResponse(
        total_credited=result.total_credited,
        processed=[_as_process_item(item) for item in result.processed],
        failed_transaction_ids=result.failed_transaction_ids,
    )


@router.post("/internal/purchases/verify", response_model=PurchaseVerifyResponse)
async def verify_purchases(payload: PurchaseVerifyRequest, request: Request) -> PurchaseVerifyResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        result = await PurchaseService.verify_and_restore(
            session,
            user_id=payload.user_id,
            owned_products=_as_owned_products(payload.owned_products),
            now_utc=now_utc,
        )

    return PurchaseVerifyResponse(
        restored=result.restored,
        errors=result.errors,
        details=[
            RestorationDetailResponse(
                product_id=detail.product_id,
                transaction_id=detail.transaction_id,
                status=detail.status,
                credits=detail.credits,
            )
            for detail in result.details
        ],
    )


@router.post("/internal/purchases/summary", response_model=PurchaseSummaryResponse)
async def summarize_purchases(payload: PurchaseVerifyRequest, request: Request) -> PurchaseSummaryResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        summary = await PurchaseService.summarize_owned_purchases(
            session,
            user_id=payload.user_id,
            owned_products=_as_owned_products(payload.owned_products),
            now_utc=now_utc,
        )

    return PurchaseSummaryResponse(
        total_credits=summary.total_credits,
        purchases=[
            OwnedPurchaseStatusResponse(
                product_id=item.product_id,
                purchase_date=item.purchase_date,
                expected_credits=item.expected_credits,
                transaction_id=item.transaction_id,
                recorded=item.recorded,
                credit_status=item.credit_status,
                restored=item.restored,
            )
            for item in summary.purchases
        ],
    )


@router.post("/internal/purchases/retry-failed", response_model=PurchaseRetryResponse)
async def retry_failed_purchases(payload: PurchaseUserRequest, request: Request) -> PurchaseRetryResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        result = await PurchaseService.retry_failed_credits(
            session,
            user_id=payload.user_id,
            now_utc=now_utc,
        )

    return PurchaseRetryResponse(
        retried=result.retried,
        credited=result.credited,
        failed=result.failed,
        review=result.review,
    )


@router.post("/internal/purchases/{transaction_id}/restore", response_model=PurchaseProcessItem)
async def restore_purchase(
    transaction_id: str,
    payload: PurchaseUserRequest,
    request: Request,
) -> PurchaseProcessItem:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await PurchaseService.restore_transaction(
                session,
                user_id=payload.user_id,
                transaction_id=transaction_id,
                now_utc=now_utc,
            )
    except PurchaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_PURCHASE_NOT_FOUND"}) from exc
    except PurchaseOwnershipError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_PURCHASE_OWNERSHIP"}) from exc
    except PurchaseAlreadyProcessedError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_PURCHASE_ALREADY_PROCESSED"}) from exc
    except PurchaseNotCompletedError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_PURCHASE_NOT_COMPLETED"}) from exc
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_PRODUCT_NOT_FOUND"}) from exc

    logger.info("internal_purchase_restored", user_id=payload.user_id, transaction_id=transaction_id)
    return _as_process_item(result)


@router.get(
    "/internal/purchases/{user_id}/restorations/stats",
    response_model=RestorationStatsResponse,
)
async def get_restoration_stats(user_id: str, request: Request) -> RestorationStatsResponse:
    _assert_internal_access(request)

    async with SessionLocal.begin() as session:
        stats = await PurchaseService.get_restoration_stats(session, user_id=user_id)

    return RestorationStatsResponse(
        total_restorations=stats.total_restorations,
        successful_restorations=stats.successful_restorations,
        total_credits_restored=stats.total_credits_restored,
        last_restoration_date=stats.last_restoration_date,
    )


@router.get("/internal/purchases/{user_id}/restorations", response_model=list[RestorationHistoryItem])
async def list_restorations(
    user_id: str,
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[RestorationHistoryItem]:
    _assert_internal_access(request)

    async with SessionLocal.begin() as session:
        rows = await PurchaseService.list_restorations(session, user_id=user_id, limit=limit)
        return [
            RestorationHistoryItem(
                id=row.id,
                product_id=row.product_id,
                transaction_id=row.transaction_id,
                expected_credits=row.expected_credits,
                actual_credits_added=row.actual_credits_added,
                reason=row.reason,
                status=row.status,
                created_at=row.created_at,
            )
            for row in rows
        ]


@router.get("/internal/purchases/{user_id}/history", response_model=list[PurchaseHistoryItem])
async def list_purchases(
    user_id: str,
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[PurchaseHistoryItem]:
    _assert_internal_access(request)

    async with SessionLocal.begin() as session:
        rows = await PurchaseService.list_purchases(session, user_id=user_id, limit=limit)
        return [
            PurchaseHistoryItem(
                transaction_id=row.transaction_id,
                product_id=row.product_id,
                purchase_date=row.purchase_date,
                price=row.price,
                currency=row.currency,
                status=row.status,
                processed_at=row.processed_at,
                restored=row.restored,
                credit_status=row.credit_status,
            )
            for row in rows
        ]
