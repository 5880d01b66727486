BATCH_SOURCE_PURCHASE = "purchase"
BATCH_SOURCE_VERIFICATION = "verification"
BATCH_SOURCE_MANUAL_RESTORE = "manual_restore"
BATCH_SOURCE_MANUAL_GRANT = "manual_grant"

BATCH_SOURCES = frozenset(
    {
        BATCH_SOURCE_PURCHASE,
        BATCH_SOURCE_VERIFICATION,
        BATCH_SOURCE_MANUAL_RESTORE,
        BATCH_SOURCE_MANUAL_GRANT,
    }
)
