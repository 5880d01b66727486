from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from credit_ledger.economy.purchases.rules import as_utc

# provider timestamps without an offset are taken as UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class PurchaseRecordRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    product_id: str = Field(min_length=1, max_length=64)
    transaction_id: str = Field(min_length=1, max_length=128)
    purchase_date: UtcDatetime
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: str = Field(default="completed", min_length=1, max_length=16)


class PurchaseRecordResponse(BaseModel):
    transaction_id: str
    created: bool


class ReceiptTransactionPayload(BaseModel):
    transaction_id: str = Field(min_length=1, max_length=128)
    product_id: str = Field(min_length=1, max_length=64)
    purchase_date: UtcDatetime
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class PurchaseProcessRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    product_id: str = Field(min_length=1, max_length=64)
    transaction_id: str | None = Field(default=None, max_length=128)
    purchase_date: UtcDatetime | None = None
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    transactions: list[ReceiptTransactionPayload] | None = None


class PurchaseProcessItem(BaseModel):
    transaction_id: str
    product_id: str
    credited: int = Field(ge=0)
    status: str
    error: str | None = None


class PurchaseProcessResponse(BaseModel):
    total_credited: int = Field(ge=0)
    processed: list[PurchaseProcessItem]
    failed_transaction_ids: list[str]


class OwnedProductPayload(BaseModel):
    product_id: str = Field(min_length=1, max_length=64)
    purchase_date: UtcDatetime
    transaction_id: str | None = Field(default=None, max_length=128)


class PurchaseVerifyRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    owned_products: list[OwnedProductPayload] = Field(default_factory=list, max_length=200)


class RestorationDetailResponse(BaseModel):
    product_id: str
    transaction_id: str | None = None
    status: str
    credits: int = Field(ge=0)


class PurchaseVerifyResponse(BaseModel):
    restored: int = Field(ge=0)
    errors: int = Field(ge=0)
    details: list[RestorationDetailResponse]


class PurchaseUserRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)


class PurchaseRetryResponse(BaseModel):
    retried: int = Field(ge=0)
    credited: int = Field(ge=0)
    failed: int = Field(ge=0)
    review: list[str]


class RestorationStatsResponse(BaseModel):
    total_restorations: int = Field(ge=0)
    successful_restorations: int = Field(ge=0)
    total_credits_restored: int = Field(ge=0)
    last_restoration_date: datetime | None = None


class PurchaseHistoryItem(BaseModel):
    transaction_id: str
    product_id: str
    purchase_date: datetime
    price: Decimal | None = None
    currency: str | None = None
    status: str
    processed_at: datetime | None = None
    restored: bool
    credit_status: str


class RestorationHistoryItem(BaseModel):
    id: int
    product_id: str
    transaction_id: str
    expected_credits: int
    actual_credits_added: int
    reason: str
    status: str
    created_at: datetime


class OwnedPurchaseStatusResponse(BaseModel):
    product_id: str
    purchase_date: datetime
    expected_credits: int = Field(ge=0)
    transaction_id: str | None = None
    recorded: bool
    credit_status: str | None = None
    restored: bool


class PurchaseSummaryResponse(BaseModel):
    total_credits: int = Field(ge=0)
    purchases: list[OwnedPurchaseStatusResponse]
