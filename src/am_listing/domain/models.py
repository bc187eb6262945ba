"""Domain models for listings, bids and purchases: pure dataclasses.

Money fields are int cents. Statuses are stored as plain strings matching
ListingStatus / PaymentStatus values, as the DB columns do.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.am_common.enums import PaymentStatus


@dataclass
class Listing:
    id: str
    title: str
    description: str
    seller_id: str
    starting_price: int
    current_price: int
    end_time: datetime
    status: str
    created_at: datetime
    updated_at: datetime
    image_url: str | None = None

    def is_seller(self, user_id: str) -> bool:
        # User ids are opaque token subjects, compared exactly
        return self.seller_id == user_id

    @property
    def has_bids(self) -> bool:
        # Every accepted bid is strictly above the previous price
        return self.current_price > self.starting_price


@dataclass
class NewListing:
    title: str
    description: str
    seller_id: str
    starting_price: int
    end_time: datetime
    image_url: str | None = None


@dataclass
class ListingPatch:
    """Fields a conditional listing update may change. None means untouched."""

    status: str | None = None
    current_price: int | None = None


@dataclass
class Bid:
    id: str
    listing_id: str
    bidder_id: str
    amount: int
    placed_at: datetime
    sequence: int  # store-assigned arrival order


@dataclass
class NewBid:
    listing_id: str
    bidder_id: str
    amount: int
    placed_at: datetime


@dataclass
class Purchase:
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    winning_bid_amount: int
    payment_status: str
    purchase_date: datetime
    product_title: str
    product_image_url: str | None = None
    payment_reference: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING


@dataclass
class NewPurchase:
    listing_id: str
    buyer_id: str
    seller_id: str
    winning_bid_amount: int
    purchase_date: datetime
    product_title: str
    product_image_url: str | None = None
    payment_status: str = field(default=PaymentStatus.PENDING.value)


@dataclass
class PurchasePatch:
    payment_status: str
    purchase_date: datetime | None = None
    payment_reference: str | None = None
