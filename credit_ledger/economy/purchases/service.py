from __future__ import annotations

from credit_ledger.economy.purchases.processing import process_purchase, process_receipt
from credit_ledger.economy.purchases.recorder import is_processed, record_purchase
from credit_ledger.economy.purchases.restoration import (
    get_restoration_stats,
    is_transaction_restored,
    list_purchases,
    list_restorations,
    restore_transaction,
    retry_failed_credits,
    summarize_owned_purchases,
    verify_and_restore,
)


class PurchaseService:
    record_purchase = staticmethod(record_purchase)
    is_processed = staticmethod(is_processed)
    process_purchase = staticmethod(process_purchase)
    process_receipt = staticmethod(process_receipt)
    verify_and_restore = staticmethod(verify_and_restore)
    is_transaction_restored = staticmethod(is_transaction_restored)
    restore_transaction = staticmethod(restore_transaction)
    retry_failed_credits = staticmethod(retry_failed_credits)
    summarize_owned_purchases = staticmethod(summarize_owned_purchases)
    get_restoration_stats = staticmethod(get_restoration_stats)
    list_purchases = staticmethod(list_purchases)
    list_restorations = staticmethod(list_restorations)
