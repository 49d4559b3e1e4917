"""
Marketplace error taxonomy.

Every failing engine operation raises one of these and leaves all state
exactly as it was before the call.

Error code ranges:
  1xxx: Input validation
  2xxx: Authorization
  3xxx: Assets
  4xxx: Funds / payment media
  5xxx: Reservations
  6xxx: Sale state
  7xxx: Bid book
  9xxx: Engine
"""


class MarketError(Exception):
    """Base marketplace error."""

    code = 9000

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# --- 1xxx: Input ---

class InvalidInput(MarketError):
    code = 1000


class InvalidQuantity(InvalidInput):
    code = 1001


class InvalidDuration(InvalidInput):
    code = 1002


class InvalidPrice(InvalidInput):
    code = 1003


class SelfOffer(InvalidInput):
    code = 1004


class InvalidRatio(InvalidInput):
    code = 1005


# --- 2xxx: Authorization ---

class NotAuthorized(MarketError):
    code = 2000


class NotOwner(NotAuthorized):
    code = 2001


# --- 3xxx: Assets ---

class UnsupportedAsset(MarketError):
    code = 3001

    def __init__(self, collection: bytes) -> None:
        self.collection = collection
        super().__init__(f"Unsupported asset collection: 0x{collection.hex()}")


class AssetTransferError(MarketError):
    code = 3002


# --- 4xxx: Funds ---

class InsufficientFunds(MarketError):
    code = 4001

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient funds: required {required}, available {available}")


class UnknownPaymentMethod(MarketError):
    code = 4002

    def __init__(self, payment_method: int) -> None:
        self.payment_method = payment_method
        super().__init__(f"Unknown payment method: {payment_method}")


# --- 5xxx: Reservations ---

class ReservationError(MarketError):
    code = 5000


class InsufficientFree(ReservationError):
    code = 5001

    def __init__(self, requested: int, free: int) -> None:
        self.requested = requested
        self.free = free
        super().__init__(f"Insufficient free quantity: requested {requested}, free {free}")


class OverRelease(ReservationError):
    code = 5002

    def __init__(self, requested: int, committed: int) -> None:
        self.requested = requested
        self.committed = committed
        super().__init__(f"Release of {requested} exceeds committed {committed}")


# --- 6xxx: Sale state ---

class SaleNotOpen(MarketError):
    code = 6001

    def __init__(self, sale_id: int) -> None:
        self.sale_id = sale_id
        super().__init__(f"Sale {sale_id} is not open")


class WrongSaleKind(MarketError):
    code = 6002


class SaleWindowError(MarketError):
    """Operation attempted outside the sale's time window."""
    code = 6003


class SaleNotExpired(SaleWindowError):
    code = 6004

    def __init__(self, sale_id: int, end_time: int) -> None:
        self.sale_id = sale_id
        self.end_time = end_time
        super().__init__(f"Sale {sale_id} runs until {end_time}")


# --- 7xxx: Bid book ---

class NoActiveBid(MarketError):
    code = 7001


# --- 9xxx: Engine ---

class Reentrant(MarketError):
    code = 9001

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Reentrant call into {operation}")


__all__ = [
    "MarketError",
    "InvalidInput",
    "InvalidQuantity",
    "InvalidDuration",
    "InvalidPrice",
    "SelfOffer",
    "InvalidRatio",
    "NotAuthorized",
    "NotOwner",
    "UnsupportedAsset",
    "AssetTransferError",
    "InsufficientFunds",
    "UnknownPaymentMethod",
    "ReservationError",
    "InsufficientFree",
    "OverRelease",
    "SaleNotOpen",
    "WrongSaleKind",
    "SaleWindowError",
    "SaleNotExpired",
    "NoActiveBid",
    "Reentrant",
]
