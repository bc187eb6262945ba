"""AuctionLifecycle: applies the pure lifecycle rules against the store.

reconcile() is safe to call from any number of observers at once: the
ACTIVE -> ENDED write is conditional on the stored status still being
ACTIVE, and a loser of that race just re-reads the winner's row.
"""

import logging

from src.am_common.clock import Clock, SystemClock
from src.am_common.enums import ListingStatus
from src.am_common.errors import (
    ConflictError,
    InvalidTransitionError,
    NotSellerError,
)
from src.am_listing.domain import lifecycle as rules
from src.am_listing.domain.models import Listing, ListingPatch
from src.am_listing.domain.repository import ListingStoreProtocol

logger = logging.getLogger(__name__)


class AuctionLifecycle:
    def __init__(self, store: ListingStoreProtocol, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    async def reconcile(self, listing: Listing | str) -> Listing:
        """Return the listing with ACTIVE -> ENDED applied if its end time has passed."""
        if isinstance(listing, str):
            listing = await self._store.get_listing(listing)
        now = self._clock.now()
        if not rules.needs_end_transition(listing, now):
            return listing

        try:
            ended = await self._store.update_listing(
                listing.id,
                expected_status=ListingStatus.ACTIVE.value,
                patch=ListingPatch(status=ListingStatus.ENDED.value),
            )
        except ConflictError:
            logger.debug("Listing %s already transitioned by another observer", listing.id)
            return await self._store.get_listing(listing.id)

        logger.info("Listing %s ended at %s (price=%d)", ended.id, now.isoformat(), ended.current_price)
        return ended

    async def cancel(self, listing_id: str, actor_id: str) -> Listing:
        """Seller cancels an ACTIVE listing that has received no bids.

        Policy: cancellation is blocked once any bid exists; there is no refund flow.
        """
        listing = await self.reconcile(listing_id)
        if not listing.is_seller(actor_id):
            raise NotSellerError(listing_id)
        rules.check_transition(str(listing.status), ListingStatus.CANCELLED.value)

        bids = await self._store.list_bids_for_listing(listing_id, limit=1)
        if bids or listing.has_bids:
            raise InvalidTransitionError(f"listing {listing_id} has bids and cannot be cancelled")

        try:
            # Any admitted bid moves current_price off starting_price
            cancelled = await self._store.update_listing(
                listing_id,
                expected_status=ListingStatus.ACTIVE.value,
                patch=ListingPatch(status=ListingStatus.CANCELLED.value),
                expected_price=listing.starting_price,
            )
        except ConflictError:
            fresh = await self._store.get_listing(listing_id)
            raise InvalidTransitionError(
                f"listing {listing_id} changed to {fresh.status} "
                f"(price {fresh.current_price}) during cancellation"
            ) from None

        logger.info("Listing %s cancelled by seller %s", listing_id, actor_id)
        return cancelled

    async def mark_sold(self, listing_id: str) -> Listing:
        """ENDED -> SOLD. Idempotent: an already SOLD listing is returned as is."""
        try:
            sold = await self._store.update_listing(
                listing_id,
                expected_status=ListingStatus.ENDED.value,
                patch=ListingPatch(status=ListingStatus.SOLD.value),
            )
        except ConflictError:
            fresh = await self._store.get_listing(listing_id)
            if fresh.status == ListingStatus.SOLD:
                return fresh
            raise InvalidTransitionError(f"{fresh.status} -> {ListingStatus.SOLD.value}") from None
        logger.info("Listing %s sold", listing_id)
        return sold
