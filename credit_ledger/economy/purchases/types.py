from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


@dataclass(slots=True)
class ReceiptTransaction:
    transaction_id: str
    product_id: str
    purchase_date: datetime
    price: Decimal | None = None
    currency: str | None = None


@dataclass(slots=True)
class OwnedProduct:
    product_id: str
    purchase_date: datetime
    transaction_id: str | None = None


@dataclass(slots=True)
class PurchaseProcessResult:
    transaction_id: str
    product_id: str
    credited: int
    status: str
    error: str | None = None


@dataclass(slots=True)
class ReceiptProcessResult:
    total_credited: int = 0
    processed: list[PurchaseProcessResult] = field(default_factory=list)
    failed_transaction_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RestorationDetail:
    product_id: str
    transaction_id: str | None
    status: str
    credits: int = 0


@dataclass(slots=True)
class VerificationResult:
    restored: int = 0
    errors: int = 0
    details: list[RestorationDetail] = field(default_factory=list)


@dataclass(slots=True)
class RetryResult:
    retried: int = 0
    credited: int = 0
    failed: int = 0
    review: list[str] = field(default_factory=list)


@dataclass(slots=True)
class OwnedPurchaseStatus:
    product_id: str
    purchase_date: datetime
    expected_credits: int
    transaction_id: str | None
    recorded: bool
    credit_status: str | None
    restored: bool


@dataclass(slots=True)
class PurchaseSummary:
    total_credits: int
    purchases: list[OwnedPurchaseStatus] = field(default_factory=list)


@dataclass(slots=True)
class RestorationStats:
    total_restorations: int
    successful_restorations: int
    total_credits_restored: int
    last_restoration_date: datetime | None
