"""NotificationService: gathers a user's inputs from the store and derives notices.

Listings the user bid on are reconciled first, so a listing whose end time
has passed is seen as ENDED even if nobody has observed it yet.
"""

from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.domain.models import Bid, Listing
from src.am_listing.domain.repository import ListingStoreProtocol
from src.am_notification.domain.deriver import derive_notices, won_listings
from src.am_notification.domain.models import Notice


class NotificationService:
    def __init__(self, store: ListingStoreProtocol, lifecycle: AuctionLifecycle) -> None:
        self._store = store
        self._lifecycle = lifecycle

    async def _bid_listings(self, user_id: str) -> tuple[list[Listing], list[Bid]]:
        own_bids = await self._store.list_bids_by_bidder(user_id)
        listing_ids = sorted({b.listing_id for b in own_bids})
        listings = [
            await self._lifecycle.reconcile(listing)
            for listing in await self._store.list_listings(listing_ids)
        ]
        all_bids: list[Bid] = []
        for listing in listings:
            all_bids.extend(await self._store.list_bids_for_listing(listing.id))
        return listings, all_bids

    async def notices_for(self, user_id: str) -> list[Notice]:
        listings, bids = await self._bid_listings(user_id)
        purchases = await self._store.list_purchases_by_buyer(user_id)
        notices = derive_notices(user_id, listings, bids, purchases)
        return sorted(notices, key=lambda n: (n.kind.value, n.listing_id))

    async def won_items(self, user_id: str) -> list[Listing]:
        listings, bids = await self._bid_listings(user_id)
        return won_listings(user_id, listings, bids)

    async def bids_by(self, user_id: str) -> list[Bid]:
        return await self._store.list_bids_by_bidder(user_id)
