from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class BatchSnapshot:
    batch_id: int
    amount: int
    expires_at: datetime


@dataclass(slots=True)
class LedgerSnapshot:
    permanent_amount: int
    batches: list[BatchSnapshot] = field(default_factory=list)

    @property
    def expiring_total(self) -> int:
        return sum(batch.amount for batch in self.batches)

    @property
    def total(self) -> int:
        return self.permanent_amount + self.expiring_total


@dataclass(frozen=True, slots=True)
class BatchAdjustment:
    batch_id: int
    new_amount: int


@dataclass(slots=True)
class SpendPlan:
    requested: int
    batch_adjustments: list[BatchAdjustment]
    permanent_debit: int
    shortfall: int

    @property
    def allowed(self) -> bool:
        return self.shortfall == 0


@dataclass(slots=True)
class CreditBalanceView:
    user_id: str
    permanent: int
    expiring_total: int

    @property
    def total(self) -> int:
        return self.permanent + self.expiring_total


@dataclass(slots=True)
class SpendResult:
    allowed: bool
    requested: int
    remaining_total: int
    shortfall: int = 0
    consumed_batch_ids: list[int] = field(default_factory=list)
    permanent_debit: int = 0


@dataclass(slots=True)
class CreditGrantResult:
    user_id: str
    amount: int
    expires_at: datetime | None
    batch_id: int | None
    total: int
