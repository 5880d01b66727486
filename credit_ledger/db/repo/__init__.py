from credit_ledger.db.repo.credit_balances_repo import CreditBalancesRepo
from credit_ledger.db.repo.expiring_batches_repo import ExpiringBatchesRepo
from credit_ledger.db.repo.purchases_repo import PurchasesRepo
from credit_ledger.db.repo.restorations_repo import RestorationsRepo

__all__ = [
    "CreditBalancesRepo",
    "ExpiringBatchesRepo",
    "PurchasesRepo",
    "RestorationsRepo",
]
