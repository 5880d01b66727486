class CreditError(Exception):
    pass


class CreditValidationError(CreditError):
    pass


class InsufficientCreditsError(CreditError):
    def __init__(self, *, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(f"insufficient credits: requested={requested} available={available}")

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.available)
