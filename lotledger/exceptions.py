"""Custom exceptions for Lot Ledger."""

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for lot ledger errors."""


class InvalidAcquisitionError(LedgerError):
    """Raised when an acquisition has a non-positive quantity or no usable cost."""

    def __init__(self, source_id: str, message: str, symbol: str | None = None):
        self.source_id = source_id
        self.symbol = symbol
        super().__init__(f"Invalid acquisition {source_id}: {message}")


class InvalidDispositionError(LedgerError):
    """Raised when a sale is not a disposition or has a non-positive quantity."""

    def __init__(self, transaction_id: str, message: str):
        self.transaction_id = transaction_id
        super().__init__(f"Invalid disposition {transaction_id}: {message}")


class InsufficientLotQuantityError(LedgerError):
    """Raised when the lots designated for a specific-ID sale cannot cover it."""

    def __init__(self, sale_id: str, requested: Decimal, available: Decimal):
        self.sale_id = sale_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient lot quantity for sale {sale_id}: "
            f"requested={requested}, available={available}"
        )


class InvalidRatioError(LedgerError):
    """Raised when a corporate-action ratio is not usable."""

    def __init__(self, ratio: Decimal | None, message: str = "ratio must be greater than 0"):
        self.ratio = ratio
        super().__init__(f"Invalid corporate action ratio {ratio}: {message}")


class LotNotFoundError(LedgerError):
    """Raised when an operation references a lot that is not in the lot set."""

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}")


class DuplicateLotError(LedgerError):
    """Raised when a lot id is added to the store a second time."""

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot already exists: {lot_id}")


class LotInvariantError(LedgerError):
    """Raised when a lot mutation would break quantity or status invariants."""

    def __init__(self, lot_id: str, message: str):
        self.lot_id = lot_id
        super().__init__(f"Lot {lot_id} invariant violated: {message}")
