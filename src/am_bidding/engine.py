"""BiddingEngine: validates and admits bids.

Validation always runs against the freshest read: the listing is reconciled
(so an expired ACTIVE row becomes ENDED first), then the rules run, then the
store applies the price raise and the bid append as one guarded unit. If a
concurrent bid moved the price in between, the store reports ConflictError
and the whole read-validate-write cycle starts again with the new price.
"""

import logging
from dataclasses import dataclass

from src.am_common.clock import Clock
from src.am_common.errors import ConflictError, ConsistencyError
from src.am_bidding.rules.auction_active import check_auction_active
from src.am_bidding.rules.bid_amount import check_bid_amount
from src.am_bidding.rules.self_bid import check_not_seller
from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.domain.models import Bid, Listing, NewBid
from src.am_listing.domain.repository import ListingStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class BidResult:
    listing: Listing
    bid: Bid


class BiddingEngine:
    def __init__(
        self,
        store: ListingStoreProtocol,
        lifecycle: AuctionLifecycle,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._lifecycle = lifecycle
        self._max_attempts = max_attempts

    @property
    def clock(self) -> Clock:
        return self._lifecycle.clock

    async def place_bid(self, listing_id: str, bidder_id: str, amount: int) -> BidResult:
        """Admit a bid of `amount` cents or raise; no state changes on failure."""
        last_conflict: ConflictError | None = None
        for attempt in range(1, self._max_attempts + 1):
            listing = await self._lifecycle.reconcile(listing_id)
            now = self.clock.now()

            check_auction_active(listing, now)
            check_not_seller(listing, bidder_id)
            check_bid_amount(listing, amount)

            new_bid = NewBid(
                listing_id=listing.id,
                bidder_id=bidder_id,
                amount=amount,
                placed_at=now,
            )
            try:
                updated, bid = await self._store.apply_bid(
                    listing.id, listing.current_price, new_bid, now
                )
            except ConflictError as e:
                last_conflict = e
                logger.debug(
                    "Bid conflict on %s (attempt %d/%d): %s",
                    listing_id, attempt, self._max_attempts, e.message,
                )
                continue

            self._verify_applied(updated, bid, amount)
            logger.info(
                "Bid accepted: listing=%s bidder=%s amount=%d (was %d)",
                listing.id, bidder_id, amount, listing.current_price,
            )
            return BidResult(listing=updated, bid=bid)

        assert last_conflict is not None
        raise last_conflict

    async def bid_history(self, listing_id: str, limit: int | None = None) -> list[Bid]:
        """Top bids for a listing, leading bid first."""
        await self._store.get_listing(listing_id)
        return await self._store.list_bids_for_listing(listing_id, limit=limit)

    @staticmethod
    def _verify_applied(listing: Listing, bid: Bid, amount: int) -> None:
        if bid.listing_id != listing.id or bid.amount != amount or listing.current_price != amount:
            logger.error(
                "Bid write left listing %s at price %d with bid %s amount %d",
                listing.id, listing.current_price, bid.id, bid.amount,
            )
            raise ConsistencyError(
                f"listing {listing.id} price {listing.current_price} != bid {bid.id} amount {bid.amount}"
            )
