from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from credit_ledger.api.routes import internal_purchases
from credit_ledger.economy.purchases.errors import (
    PurchaseAlreadyProcessedError,
    PurchaseNotFoundError,
    PurchaseValidationError,
)
from credit_ledger.economy.purchases.service import PurchaseService
from credit_ledger.economy.purchases.types import (
    PurchaseProcessResult,
    ReceiptProcessResult,
    RestorationDetail,
    RestorationStats,
    VerificationResult,
)
from credit_ledger.main import app

TOKEN = "internal-secret"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeSessionLocal:
    def begin(self) -> _FakeSessionLocal:
        return self

    async def __aenter__(self) -> object:
        return SimpleNamespace()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


@pytest.fixture(autouse=True)
def internal_settings(monkeypatch) -> None:
    monkeypatch.setattr(
        internal_purchases,
        "get_settings",
        lambda: SimpleNamespace(
            internal_api_token=TOKEN,
            internal_api_allowlist="127.0.0.1/32",
            internal_api_trusted_proxies="",
        ),
    )
    monkeypatch.setattr(internal_purchases, "SessionLocal", _FakeSessionLocal())


async def _post(path: str, payload: dict, *, token: str = TOKEN):
    async with AsyncClient(
        transport=ASGITransport(app=app, client=("127.0.0.1", 8080)),
        base_url="http://testserver",
    ) as client:
        return await client.post(path, json=payload, headers={"X-Internal-Token": token})


async def test_purchases_routes_reject_wrong_token() -> None:
    response = await _post("/internal/purchases/retry-failed", {"user_id": "u1"}, token="wrong")

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


async def test_process_single_transaction(monkeypatch) -> None:
    async def _fake_process(session, **kwargs):
        return PurchaseProcessResult(
            transaction_id=kwargs["transaction_id"],
            product_id=kwargs["product_id"],
            credited=100,
            status="credited",
        )

    monkeypatch.setattr(PurchaseService, "process_purchase", _fake_process)

    response = await _post(
        "/internal/purchases/process",
        {"user_id": "u1", "product_id": "weekly", "transaction_id": "tx1", "purchase_date": NOW.isoformat()},
    )

    assert response.status_code == 200
    assert response.json() == {
        "total_credited": 100,
        "processed": [
            {
                "transaction_id": "tx1",
                "product_id": "weekly",
                "credited": 100,
                "status": "credited",
                "error": None,
            }
        ],
        "failed_transaction_ids": [],
    }


async def test_process_receipt_bundle(monkeypatch) -> None:
    captured: dict[str, object] = {}

    async def _fake_receipt(session, *, user_id: str, product_id: str, transactions, now_utc: datetime):
        captured["transactions"] = [item.transaction_id for item in transactions]
        return ReceiptProcessResult(total_credited=400, processed=[], failed_transaction_ids=["r-2"])

    monkeypatch.setattr(PurchaseService, "process_receipt", _fake_receipt)

    response = await _post(
        "/internal/purchases/process",
        {
            "user_id": "u1",
            "product_id": "monthly",
            "transactions": [
                {"transaction_id": "r-1", "product_id": "monthly", "purchase_date": NOW.isoformat()},
                {"transaction_id": "r-2", "product_id": "monthly", "purchase_date": NOW.isoformat()},
            ],
        },
    )

    assert response.status_code == 200
    assert response.json()["failed_transaction_ids"] == ["r-2"]
    assert captured["transactions"] == ["r-1", "r-2"]


async def test_process_without_transaction_id_is_422(monkeypatch) -> None:
    async def _fake_process(session, **kwargs):
        raise PurchaseValidationError("transaction_id is required")

    monkeypatch.setattr(PurchaseService, "process_purchase", _fake_process)

    response = await _post("/internal/purchases/process", {"user_id": "u1", "product_id": "weekly"})

    assert response.status_code == 422
    assert response.json() == {"detail": {"code": "E_PURCHASE_INVALID"}}


async def test_verify_returns_details(monkeypatch) -> None:
    async def _fake_verify(session, *, user_id: str, owned_products, now_utc: datetime):
        assert [item.product_id for item in owned_products] == ["weekly"]
        return VerificationResult(
            restored=100,
            errors=0,
            details=[RestorationDetail(product_id="weekly", transaction_id="tx1", status="restored", credits=100)],
        )

    monkeypatch.setattr(PurchaseService, "verify_and_restore", _fake_verify)

    response = await _post(
        "/internal/purchases/verify",
        {
            "user_id": "u1",
            "owned_products": [
                {"product_id": "weekly", "purchase_date": NOW.isoformat(), "transaction_id": "tx1"},
            ],
        },
    )

    assert response.status_code == 200
    assert response.json()["restored"] == 100
    assert response.json()["details"][0]["status"] == "restored"


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (PurchaseNotFoundError, 404, "E_PURCHASE_NOT_FOUND"),
        (PurchaseAlreadyProcessedError, 409, "E_PURCHASE_ALREADY_PROCESSED"),
    ],
)
async def test_manual_restore_error_mapping(monkeypatch, error: type[Exception], status_code: int, code: str) -> None:
    async def _fake_restore(session, *, user_id: str, transaction_id: str, now_utc: datetime):
        raise error(transaction_id)

    monkeypatch.setattr(PurchaseService, "restore_transaction", _fake_restore)

    response = await _post("/internal/purchases/tx9/restore", {"user_id": "u1"})

    assert response.status_code == status_code
    assert response.json() == {"detail": {"code": code}}


async def test_restoration_stats(monkeypatch) -> None:
    async def _fake_stats(session, *, user_id: str):
        return RestorationStats(
            total_restorations=3,
            successful_restorations=2,
            total_credits_restored=500,
            last_restoration_date=NOW,
        )

    monkeypatch.setattr(PurchaseService, "get_restoration_stats", _fake_stats)

    async with AsyncClient(
        transport=ASGITransport(app=app, client=("127.0.0.1", 8080)),
        base_url="http://testserver",
    ) as client:
        response = await client.get(
            "/internal/purchases/u1/restorations/stats",
            headers={"X-Internal-Token": TOKEN},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["total_credits_restored"] == 500
    assert payload["successful_restorations"] == 2


async def test_verify_accepts_purchase_date_without_offset(monkeypatch) -> None:
    seen: list = []

    async def _fake_verify(session, **kwargs):
        seen.extend(kwargs["owned_products"])
        return VerificationResult()

    monkeypatch.setattr(PurchaseService, "verify_and_restore", _fake_verify)

    response = await _post(
        "/internal/purchases/verify",
        {
            "user_id": "u1",
            "owned_products": [
                {"product_id": "weekly", "purchase_date": "2026-03-01T10:00:00", "transaction_id": "tx-1"},
            ],
        },
    )

    assert response.status_code == 200
    assert response.json() == {"restored": 0, "errors": 0, "details": []}
    assert seen[0].purchase_date == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
