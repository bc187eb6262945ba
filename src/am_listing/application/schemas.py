"""Pydantic schemas for am_listing API requests and responses.

Money goes out twice: as int cents (`*_cents`) and as a display string.
Money comes in as a decimal amount ("150", "150.50") and is converted to
cents with parse_amount before it reaches the domain.
"""

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.am_common.cents import cents_to_display, parse_amount
from src.am_listing.application.service import ListingView
from src.am_listing.domain.models import Bid, Listing, NewListing


class CreateListingRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    starting_price: Decimal
    end_time: datetime
    image_url: str | None = None

    @field_validator("end_time")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def to_domain(self, seller_id: str) -> NewListing:
        return NewListing(
            title=self.title,
            description=self.description,
            seller_id=seller_id,
            starting_price=parse_amount(self.starting_price),
            end_time=self.end_time,
            image_url=self.image_url,
        )


class ListingOut(BaseModel):
    id: str
    title: str
    description: str
    seller_id: str
    starting_price_cents: int
    starting_price_display: str
    current_price_cents: int
    current_price_display: str
    end_time: datetime
    status: str
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingOut":
        return cls(
            id=listing.id,
            title=listing.title,
            description=listing.description,
            seller_id=listing.seller_id,
            starting_price_cents=listing.starting_price,
            starting_price_display=cents_to_display(listing.starting_price),
            current_price_cents=listing.current_price,
            current_price_display=cents_to_display(listing.current_price),
            end_time=listing.end_time,
            status=str(listing.status),
            image_url=listing.image_url,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )


class BidOut(BaseModel):
    id: str
    listing_id: str
    bidder_id: str
    amount_cents: int
    amount_display: str
    placed_at: datetime

    @classmethod
    def from_domain(cls, bid: Bid) -> "BidOut":
        return cls(
            id=bid.id,
            listing_id=bid.listing_id,
            bidder_id=bid.bidder_id,
            amount_cents=bid.amount,
            amount_display=cents_to_display(bid.amount),
            placed_at=bid.placed_at,
        )


class ListingDetailOut(BaseModel):
    listing: ListingOut
    time_remaining_seconds: int
    time_remaining: str
    minimum_next_bid_cents: int
    minimum_next_bid_display: str
    top_bids: list[BidOut]

    @classmethod
    def from_view(cls, view: ListingView) -> "ListingDetailOut":
        return cls(
            listing=ListingOut.from_domain(view.listing),
            time_remaining_seconds=int(view.time_remaining.total_seconds()),
            time_remaining=view.time_remaining_label,
            minimum_next_bid_cents=view.minimum_next_bid,
            minimum_next_bid_display=cents_to_display(view.minimum_next_bid),
            top_bids=[BidOut.from_domain(b) for b in view.top_bids],
        )


class ListingListOut(BaseModel):
    items: list[ListingOut]

    @classmethod
    def from_domain(cls, listings: list[Listing]) -> "ListingListOut":
        return cls(items=[ListingOut.from_domain(lst) for lst in listings])
