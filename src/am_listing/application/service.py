"""ListingApplicationService: listing creation and reconciled reads.

Every read goes through AuctionLifecycle.reconcile() first, so callers never
see a listing that claims ACTIVE after its end time.
"""

import logging
from dataclasses import dataclass, replace
from datetime import timedelta

from src.am_common.errors import InvalidListingError
from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.domain import lifecycle as rules
from src.am_listing.domain.models import Bid, Listing, NewListing
from src.am_listing.domain.repository import ListingStoreProtocol

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


@dataclass
class ListingView:
    """A reconciled listing plus the values derived from it at read time."""

    listing: Listing
    time_remaining: timedelta
    minimum_next_bid: int
    top_bids: list[Bid]

    @property
    def time_remaining_label(self) -> str:
        return rules.format_time_remaining(self.time_remaining)


class ListingApplicationService:
    def __init__(
        self,
        store: ListingStoreProtocol,
        lifecycle: AuctionLifecycle,
        bid_history_limit: int = 2,
        page_size: int = 50,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._bid_history_limit = bid_history_limit
        self._page_size = page_size

    async def create_listing(self, new: NewListing) -> Listing:
        title = new.title.strip()
        if not title:
            raise InvalidListingError("title must not be empty")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidListingError(f"title longer than {MAX_TITLE_LENGTH} characters")
        if new.starting_price < 0:
            raise InvalidListingError("starting price must not be negative")
        if new.end_time <= self._lifecycle.clock.now():
            raise InvalidListingError("end time must be in the future")
        listing = await self._store.insert_listing(replace(new, title=title))
        logger.info(
            "Listing %s created by %s: start=%d ends=%s",
            listing.id, listing.seller_id, listing.starting_price, listing.end_time.isoformat(),
        )
        return listing

    async def view_listing(self, listing_id: str) -> ListingView:
        listing = await self._lifecycle.reconcile(listing_id)
        now = self._lifecycle.clock.now()
        top_bids = await self._store.list_bids_for_listing(
            listing.id, limit=self._bid_history_limit
        )
        return ListingView(
            listing=listing,
            time_remaining=rules.time_remaining(listing, now),
            minimum_next_bid=rules.minimum_next_bid(listing),
            top_bids=top_bids,
        )

    async def list_active(self) -> list[Listing]:
        """Listings still open for bidding, newest first."""
        active: list[Listing] = []
        async for listing in self._store.list_active_listings(page_size=self._page_size):
            listing = await self._lifecycle.reconcile(listing)
            if rules.accepts_bids(listing, self._lifecycle.clock.now()):
                active.append(listing)
        active.sort(key=lambda lst: lst.created_at, reverse=True)
        return active

    async def listings_by_seller(self, seller_id: str) -> list[Listing]:
        return [
            await self._lifecycle.reconcile(listing)
            for listing in await self._store.list_listings_by_seller(seller_id)
        ]

    async def cancel_listing(self, listing_id: str, actor_id: str) -> Listing:
        return await self._lifecycle.cancel(listing_id, actor_id)
