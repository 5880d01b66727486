PURCHASE_STATUS_PENDING = "pending"
PURCHASE_STATUS_COMPLETED = "completed"
PURCHASE_STATUS_FAILED = "failed"
PURCHASE_STATUSES = frozenset(
    {PURCHASE_STATUS_PENDING, PURCHASE_STATUS_COMPLETED, PURCHASE_STATUS_FAILED}
)

CREDIT_STATUS_NONE = "none"
CREDIT_STATUS_GRANTED = "granted"
CREDIT_STATUS_FAILED = "failed"

RESTORATION_REASON_INITIAL_PURCHASE = "initial_purchase"
RESTORATION_REASON_VERIFICATION = "verification"
RESTORATION_REASON_MANUAL_RESTORE = "manual_restore"

RESTORATION_STATUS_SUCCESS = "success"
RESTORATION_STATUS_PARTIAL = "partial"
RESTORATION_STATUS_FAILED = "failed"

MAX_CREDIT_RETRY_ATTEMPTS = 3

ALREADY_PROCESSED = "already processed"
