class PurchaseError(Exception):
    pass


class ProductNotFoundError(PurchaseError):
    pass


class PurchaseValidationError(PurchaseError):
    pass


class PurchaseNotFoundError(PurchaseError):
    pass


class PurchaseOwnershipError(PurchaseError):
    pass


class PurchaseAlreadyProcessedError(PurchaseError):
    pass


class PurchaseNotCompletedError(PurchaseError):
    pass
