from credit_ledger.db.models.credit_balances import CreditBalance
from credit_ledger.db.models.credit_restorations import CreditRestoration
from credit_ledger.db.models.expiring_credit_batches import ExpiringCreditBatch
from credit_ledger.db.models.purchases import Purchase

__all__ = [
    "CreditBalance",
    "CreditRestoration",
    "ExpiringCreditBatch",
    "Purchase",
]
