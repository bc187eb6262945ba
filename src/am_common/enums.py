"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class NoticeKind(str, Enum):
    LOST = "LOST"
    WON_PENDING_PAYMENT = "WON_PENDING_PAYMENT"


class ChangeTable(str, Enum):
    """Tables whose row changes are published to subscribers."""
    LISTINGS = "listings"
    BIDS = "bids"
    PURCHASES = "purchases"
