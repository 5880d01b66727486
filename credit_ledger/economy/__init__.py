from credit_ledger.economy.credits.service import CreditService
from credit_ledger.economy.purchases.service import PurchaseService

__all__ = [
    "CreditService",
    "PurchaseService",
]
