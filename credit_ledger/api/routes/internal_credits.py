from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from credit_ledger.core.config import get_settings
from credit_ledger.db.session import SessionLocal
from credit_ledger.economy.credits.errors import CreditValidationError, InsufficientCreditsError
from credit_ledger.economy.credits.service import CreditService
from credit_ledger.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

router = APIRouter(tags=["internal", "credits"])
logger = structlog.get_logger(__name__)


class CreditBalanceResponse(BaseModel):
    user_id: str
    permanent: int = Field(ge=0)
    expiring_total: int = Field(ge=0)
    total: int = Field(ge=0)


class CreditSpendRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    amount: int = Field(gt=0)


class CreditChargeRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    action_code: str = Field(min_length=1, max_length=64)


class CreditSpendResponse(BaseModel):
    user_id: str
    amount: int
    remaining_total: int = Field(ge=0)


class CreditGrantRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    amount: int = Field(gt=0)
    validity_days: int | None = Field(default=None, gt=0, le=3650)


class CreditGrantResponse(BaseModel):
    user_id: str
    amount: int
    expires_at: datetime | None = None
    batch_id: int | None = None
    total: int = Field(ge=0)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_credits_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_credits_auth_failed", reason="invalid_credentials", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _insufficient(shortfall: int) -> HTTPException:
    return HTTPException(
        status_code=402,
        detail={"code": "E_INSUFFICIENT_CREDITS", "shortfall": shortfall},
    )


@router.get("/internal/credits/{user_id}/balance", response_model=CreditBalanceResponse)
async def get_credit_balance(user_id: str, request: Request) -> CreditBalanceResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        balance = await CreditService.get_balance(session, user_id=user_id, now_utc=now_utc)

    return CreditBalanceResponse(
        user_id=balance.user_id,
        permanent=balance.permanent,
        expiring_total=balance.expiring_total,
        total=balance.total,
    )


@router.post("/internal/credits/spend", response_model=CreditSpendResponse)
async def spend_credits(payload: CreditSpendRequest, request: Request) -> CreditSpendResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await CreditService.spend(
                session,
                user_id=payload.user_id,
                amount=payload.amount,
                now_utc=now_utc,
            )
    except CreditValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_CREDITS_INVALID"}) from exc

    if not result.allowed:
        raise _insufficient(result.shortfall)

    return CreditSpendResponse(
        user_id=payload.user_id,
        amount=payload.amount,
        remaining_total=result.remaining_total,
    )


@router.post("/internal/credits/charge", response_model=CreditSpendResponse)
async def charge_credits(payload: CreditChargeRequest, request: Request) -> CreditSpendResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await CreditService.charge_for_action(
                session,
                user_id=payload.user_id,
                action_code=payload.action_code,
                now_utc=now_utc,
            )
    except InsufficientCreditsError as exc:
        raise _insufficient(exc.shortfall) from exc
    except CreditValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_ACTION_UNKNOWN"}) from exc

    return CreditSpendResponse(
        user_id=payload.user_id,
        amount=result.requested,
        remaining_total=result.remaining_total,
    )


@router.post("/internal/credits/grant", response_model=CreditGrantResponse)
async def grant_credits(payload: CreditGrantRequest, request: Request) -> CreditGrantResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            if payload.validity_days is None:
                result = await CreditService.grant_permanent(
                    session,
                    user_id=payload.user_id,
                    amount=payload.amount,
                    now_utc=now_utc,
                )
            else:
                result = await CreditService.grant_expiring(
                    session,
                    user_id=payload.user_id,
                    amount=payload.amount,
                    validity_days=payload.validity_days,
                    now_utc=now_utc,
                )
    except CreditValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_CREDITS_INVALID"}) from exc

    return CreditGrantResponse(
        user_id=result.user_id,
        amount=result.amount,
        expires_at=result.expires_at,
        batch_id=result.batch_id,
        total=result.total,
    )
