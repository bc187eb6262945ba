# src/am_listing/domain/repository.py
"""ListingStore Protocol: the persistence + change-notification contract.

Every write that depends on a previously read value is conditional:
  - update_listing / update_purchase take the expected current status
    (and optionally the expected price) and raise ConflictError when the
    stored row no longer matches.
  - apply_bid raises the price and appends the bid as one atomic unit.
  - insert_purchase_if_absent is create-once keyed by listing_id.

Unit tests inject InMemoryListingStore or a mock conforming to this Protocol.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Protocol

from src.am_listing.domain.models import (
    Bid,
    Listing,
    ListingPatch,
    NewBid,
    NewListing,
    NewPurchase,
    Purchase,
    PurchasePatch,
)

ChangeCallback = Callable[[str, str], Awaitable[None]]
"""Invoked as callback(table, listing_id). Carries no row state."""


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class ListingStoreProtocol(Protocol):
    # --- listings ---

    async def get_listing(self, listing_id: str) -> Listing: ...

    def list_active_listings(self, page_size: int = 50) -> AsyncIterator[Listing]: ...

    async def list_listings(self, listing_ids: list[str]) -> list[Listing]: ...

    async def list_listings_by_seller(self, seller_id: str) -> list[Listing]: ...

    async def insert_listing(self, new: NewListing) -> Listing: ...

    async def update_listing(
        self,
        listing_id: str,
        expected_status: str,
        patch: ListingPatch,
        expected_price: int | None = None,
    ) -> Listing: ...

    # --- bids ---

    async def list_bids_for_listing(
        self, listing_id: str, limit: int | None = None
    ) -> list[Bid]: ...

    async def list_bids_by_bidder(self, bidder_id: str) -> list[Bid]: ...

    async def insert_bid(self, new: NewBid) -> Bid: ...

    async def apply_bid(
        self, listing_id: str, expected_price: int, new: NewBid, now: datetime
    ) -> tuple[Listing, Bid]: ...

    # --- purchases ---

    async def get_purchase(self, listing_id: str, buyer_id: str) -> Purchase: ...

    async def get_purchase_by_id(self, purchase_id: str) -> Purchase: ...

    async def find_purchase_for_listing(self, listing_id: str) -> Purchase | None: ...

    async def list_purchases_by_buyer(self, buyer_id: str) -> list[Purchase]: ...

    async def insert_purchase_if_absent(
        self, new: NewPurchase
    ) -> tuple[Purchase, bool]: ...

    async def update_purchase(
        self, purchase_id: str, expected_status: str, patch: PurchasePatch
    ) -> Purchase: ...

    # --- change notification ---

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> Subscription: ...
