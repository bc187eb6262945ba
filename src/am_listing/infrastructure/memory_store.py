"""InMemoryListingStore: in-process implementation of ListingStoreProtocol.

Used by unit tests and local development. It keeps the same conditional-write
guarantees as the SQL store: every operation runs under one asyncio.Lock, and
every public coroutine first yields to the event loop so that callers started
with asyncio.gather genuinely interleave between their reads and writes.

Rows are copied on the way in and on the way out; callers can never mutate
stored state through a returned object.
"""

import asyncio
import copy
import itertools
from collections.abc import AsyncIterator
from datetime import datetime

from src.am_common.clock import Clock, SystemClock
from src.am_common.enums import ChangeTable, ListingStatus
from src.am_common.errors import (
    ConflictError,
    ListingNotFoundError,
    PurchaseNotFoundError,
)
from src.am_common.id_generator import (
    BID_PREFIX,
    LISTING_PREFIX,
    PURCHASE_PREFIX,
    generate_id,
)
from src.am_listing.domain.lifecycle import bid_sort_key
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
from src.am_listing.domain.repository import ChangeCallback
from src.am_listing.infrastructure.notifier import InProcessNotifier, InProcessSubscription


class InMemoryListingStore:
    def __init__(
        self,
        clock: Clock | None = None,
        notifier: InProcessNotifier | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self.notifier = notifier or InProcessNotifier()
        self._lock = asyncio.Lock()
        self._listings: dict[str, Listing] = {}
        self._bids: list[Bid] = []
        self._purchases: dict[str, Purchase] = {}  # keyed by listing_id
        self._bid_sequence = itertools.count(1)

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------

    async def get_listing(self, listing_id: str) -> Listing:
        await asyncio.sleep(0)
        async with self._lock:
            return copy.copy(self._require_listing(listing_id))

    async def list_active_listings(self, page_size: int = 50) -> AsyncIterator[Listing]:
        # Keyset pagination over (created_at, id) so each page sees fresh state
        cursor: tuple[datetime, str] | None = None
        while True:
            await asyncio.sleep(0)
            async with self._lock:
                rows = sorted(
                    (
                        lst for lst in self._listings.values()
                        if lst.status == ListingStatus.ACTIVE
                        and (cursor is None or (lst.created_at, lst.id) > cursor)
                    ),
                    key=lambda lst: (lst.created_at, lst.id),
                )[:page_size]
                page = [copy.copy(lst) for lst in rows]
            for listing in page:
                yield listing
            if len(page) < page_size:
                return
            cursor = (page[-1].created_at, page[-1].id)

    async def list_listings(self, listing_ids: list[str]) -> list[Listing]:
        await asyncio.sleep(0)
        async with self._lock:
            return [
                copy.copy(self._listings[lid]) for lid in listing_ids if lid in self._listings
            ]

    async def list_listings_by_seller(self, seller_id: str) -> list[Listing]:
        await asyncio.sleep(0)
        async with self._lock:
            rows = [lst for lst in self._listings.values() if lst.seller_id == seller_id]
            rows.sort(key=lambda lst: lst.created_at, reverse=True)
            return [copy.copy(lst) for lst in rows]

    async def insert_listing(self, new: NewListing) -> Listing:
        await asyncio.sleep(0)
        async with self._lock:
            now = self._clock.now()
            listing = Listing(
                id=generate_id(LISTING_PREFIX),
                title=new.title,
                description=new.description,
                seller_id=new.seller_id,
                starting_price=new.starting_price,
                current_price=new.starting_price,
                end_time=new.end_time,
                status=ListingStatus.ACTIVE.value,
                created_at=now,
                updated_at=now,
                image_url=new.image_url,
            )
            self._listings[listing.id] = listing
            result = copy.copy(listing)
        await self.notifier.publish(ChangeTable.LISTINGS.value, result.id)
        return result

    async def update_listing(
        self,
        listing_id: str,
        expected_status: str,
        patch: ListingPatch,
        expected_price: int | None = None,
    ) -> Listing:
        await asyncio.sleep(0)
        async with self._lock:
            listing = self._require_listing(listing_id)
            if listing.status != expected_status:
                raise ConflictError(
                    f"listing {listing_id} status is {listing.status}, expected {expected_status}"
                )
            if expected_price is not None and listing.current_price != expected_price:
                raise ConflictError(
                    f"listing {listing_id} price is {listing.current_price}, expected {expected_price}"
                )
            self._apply_listing_patch(listing, patch)
            result = copy.copy(listing)
        await self.notifier.publish(ChangeTable.LISTINGS.value, listing_id)
        return result

    # ------------------------------------------------------------------
    # bids
    # ------------------------------------------------------------------

    async def list_bids_for_listing(
        self, listing_id: str, limit: int | None = None
    ) -> list[Bid]:
        await asyncio.sleep(0)
        async with self._lock:
            rows = sorted(
                (b for b in self._bids if b.listing_id == listing_id), key=bid_sort_key
            )
            if limit is not None:
                rows = rows[:limit]
            return [copy.copy(b) for b in rows]

    async def list_bids_by_bidder(self, bidder_id: str) -> list[Bid]:
        await asyncio.sleep(0)
        async with self._lock:
            rows = [b for b in self._bids if b.bidder_id == bidder_id]
            rows.sort(key=lambda b: (b.placed_at, b.sequence), reverse=True)
            return [copy.copy(b) for b in rows]

    async def insert_bid(self, new: NewBid) -> Bid:
        await asyncio.sleep(0)
        async with self._lock:
            self._require_listing(new.listing_id)
            bid = self._append_bid(new)
        await self.notifier.publish(ChangeTable.BIDS.value, new.listing_id)
        return bid

    async def apply_bid(
        self, listing_id: str, expected_price: int, new: NewBid, now: datetime
    ) -> tuple[Listing, Bid]:
        await asyncio.sleep(0)
        async with self._lock:
            listing = self._require_listing(listing_id)
            if (
                listing.status != ListingStatus.ACTIVE
                or listing.current_price != expected_price
                or listing.end_time <= now
                or new.amount <= listing.current_price
            ):
                raise ConflictError(f"listing {listing_id} changed before bid could apply")
            # Both mutations happen inside one critical section with no await
            listing.current_price = new.amount
            listing.updated_at = now
            bid = self._append_bid(new)
            result = copy.copy(listing)
        await self.notifier.publish(ChangeTable.BIDS.value, listing_id)
        await self.notifier.publish(ChangeTable.LISTINGS.value, listing_id)
        return result, bid

    # ------------------------------------------------------------------
    # purchases
    # ------------------------------------------------------------------

    async def get_purchase(self, listing_id: str, buyer_id: str) -> Purchase:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self._purchases.get(listing_id)
            if purchase is None or purchase.buyer_id != buyer_id:
                raise PurchaseNotFoundError(f"listing={listing_id} buyer={buyer_id}")
            return copy.copy(purchase)

    async def get_purchase_by_id(self, purchase_id: str) -> Purchase:
        await asyncio.sleep(0)
        async with self._lock:
            return copy.copy(self._require_purchase(purchase_id))

    async def find_purchase_for_listing(self, listing_id: str) -> Purchase | None:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self._purchases.get(listing_id)
            return copy.copy(purchase) if purchase else None

    async def list_purchases_by_buyer(self, buyer_id: str) -> list[Purchase]:
        await asyncio.sleep(0)
        async with self._lock:
            rows = [p for p in self._purchases.values() if p.buyer_id == buyer_id]
            rows.sort(key=lambda p: p.purchase_date, reverse=True)
            return [copy.copy(p) for p in rows]

    async def insert_purchase_if_absent(
        self, new: NewPurchase
    ) -> tuple[Purchase, bool]:
        await asyncio.sleep(0)
        async with self._lock:
            existing = self._purchases.get(new.listing_id)
            if existing is not None:
                return copy.copy(existing), False
            purchase = Purchase(
                id=generate_id(PURCHASE_PREFIX),
                listing_id=new.listing_id,
                buyer_id=new.buyer_id,
                seller_id=new.seller_id,
                winning_bid_amount=new.winning_bid_amount,
                payment_status=new.payment_status,
                purchase_date=new.purchase_date,
                product_title=new.product_title,
                product_image_url=new.product_image_url,
            )
            self._purchases[new.listing_id] = purchase
            result = copy.copy(purchase)
        await self.notifier.publish(ChangeTable.PURCHASES.value, new.listing_id)
        return result, True

    async def update_purchase(
        self, purchase_id: str, expected_status: str, patch: PurchasePatch
    ) -> Purchase:
        await asyncio.sleep(0)
        async with self._lock:
            purchase = self._require_purchase(purchase_id)
            if purchase.payment_status != expected_status:
                raise ConflictError(
                    f"purchase {purchase_id} status is {purchase.payment_status}, "
                    f"expected {expected_status}"
                )
            purchase.payment_status = patch.payment_status
            if patch.purchase_date is not None:
                purchase.purchase_date = patch.purchase_date
            if patch.payment_reference is not None:
                purchase.payment_reference = patch.payment_reference
            result = copy.copy(purchase)
        await self.notifier.publish(ChangeTable.PURCHASES.value, result.listing_id)
        return result

    # ------------------------------------------------------------------
    # change notification
    # ------------------------------------------------------------------

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> InProcessSubscription:
        return await self.notifier.subscribe(table, listing_id, on_change)

    # ------------------------------------------------------------------
    # helpers (call with the lock held)
    # ------------------------------------------------------------------

    def _require_listing(self, listing_id: str) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    def _require_purchase(self, purchase_id: str) -> Purchase:
        for purchase in self._purchases.values():
            if purchase.id == purchase_id:
                return purchase
        raise PurchaseNotFoundError(purchase_id)

    def _apply_listing_patch(self, listing: Listing, patch: ListingPatch) -> None:
        if patch.status is not None:
            listing.status = patch.status
        if patch.current_price is not None:
            listing.current_price = patch.current_price
        listing.updated_at = self._clock.now()

    def _append_bid(self, new: NewBid) -> Bid:
        bid = Bid(
            id=generate_id(BID_PREFIX),
            listing_id=new.listing_id,
            bidder_id=new.bidder_id,
            amount=new.amount,
            placed_at=new.placed_at,
            sequence=next(self._bid_sequence),
        )
        self._bids.append(bid)
        return copy.copy(bid)

    # ------------------------------------------------------------------
    # test helpers
    # ------------------------------------------------------------------

    def all_purchases(self) -> list[Purchase]:
        return [copy.copy(p) for p in self._purchases.values()]

    def all_bids(self) -> list[Bid]:
        return [copy.copy(b) for b in self._bids]
