"""SettlementEngine: winner determination, create-once purchase, payment.

Write order for a successful payment:
  1. purchase PENDING -> COMPLETED (guarded on PENDING)
  2. listing ENDED -> SOLD (guarded on ENDED)
A listing therefore never reads SOLD while its purchase is unpaid. If the
process dies between 1 and 2, the next finalize_if_ended() call applies 2.
"""

import logging
from dataclasses import dataclass

from src.am_common.clock import Clock
from src.am_common.enums import ListingStatus, PaymentStatus
from src.am_common.errors import (
    AlreadySettledError,
    ConflictError,
    NotWinnerError,
    PurchaseNotFoundError,
)
from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.domain.lifecycle import leading_bid
from src.am_listing.domain.models import Listing, NewPurchase, Purchase, PurchasePatch
from src.am_listing.domain.repository import ListingStoreProtocol
from src.am_settlement.domain.payment import (
    PaymentGatewayProtocol,
    PaymentMethod,
    PaymentResult,
)

logger = logging.getLogger(__name__)


@dataclass
class FinalizeResult:
    listing: Listing
    purchase: Purchase | None
    created: bool = False


@dataclass
class PaymentOutcome:
    purchase: Purchase
    listing: Listing

    @property
    def succeeded(self) -> bool:
        return self.purchase.payment_status == PaymentStatus.COMPLETED


class SettlementEngine:
    def __init__(
        self,
        store: ListingStoreProtocol,
        lifecycle: AuctionLifecycle,
        gateway: PaymentGatewayProtocol,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._gateway = gateway

    @property
    def clock(self) -> Clock:
        return self._lifecycle.clock

    async def finalize_if_ended(self, listing_id: str) -> FinalizeResult:
        """Reconcile the listing and, once ENDED with bids, make sure its purchase exists."""
        listing = await self._lifecycle.reconcile(listing_id)

        if listing.status == ListingStatus.SOLD:
            return FinalizeResult(listing, await self._store.find_purchase_for_listing(listing.id))
        if listing.status != ListingStatus.ENDED:
            return FinalizeResult(listing, None)

        purchase = await self._store.find_purchase_for_listing(listing.id)
        created = False
        if purchase is None:
            winner = leading_bid(await self._store.list_bids_for_listing(listing.id, limit=1))
            if winner is None:
                logger.debug("Listing %s ended without bids; nothing to settle", listing.id)
                return FinalizeResult(listing, None)

            purchase, created = await self._store.insert_purchase_if_absent(
                NewPurchase(
                    listing_id=listing.id,
                    buyer_id=winner.bidder_id,
                    seller_id=listing.seller_id,
                    winning_bid_amount=winner.amount,
                    purchase_date=self._lifecycle.clock.now(),
                    product_title=listing.title,
                    product_image_url=listing.image_url,
                )
            )
            if created:
                logger.info(
                    "Purchase %s created: listing=%s buyer=%s amount=%d",
                    purchase.id, listing.id, purchase.buyer_id, purchase.winning_bid_amount,
                )
            else:
                logger.debug("Purchase for listing %s already created by another observer", listing.id)

        if purchase.payment_status == PaymentStatus.COMPLETED:
            # Payment finished but the SOLD write never landed
            logger.warning("Repairing listing %s: purchase %s completed but listing ENDED", listing.id, purchase.id)
            listing = await self._lifecycle.mark_sold(listing.id)

        return FinalizeResult(listing, purchase, created)

    async def pay(
        self,
        purchase_id: str,
        payer_id: str,
        method: PaymentMethod | None = None,
    ) -> PaymentOutcome:
        purchase = await self._store.get_purchase_by_id(purchase_id)
        if purchase.buyer_id != payer_id:
            raise NotWinnerError()
        if not purchase.is_pending:
            raise AlreadySettledError(purchase.id, str(purchase.payment_status))

        result = await self._gateway.charge(purchase, method or PaymentMethod())
        now = self._lifecycle.clock.now()
        if result.approved:
            patch = PurchasePatch(
                payment_status=PaymentStatus.COMPLETED.value,
                purchase_date=now,
                payment_reference=result.reference,
            )
        else:
            patch = PurchasePatch(
                payment_status=PaymentStatus.FAILED.value,
                payment_reference=result.reference,
            )

        settled = await self._settle(purchase, patch, result)

        if settled.payment_status == PaymentStatus.COMPLETED:
            logger.info("Purchase %s paid (%s); marking listing %s sold", settled.id, result.reference, settled.listing_id)
            listing = await self._lifecycle.mark_sold(settled.listing_id)
        else:
            logger.info("Purchase %s payment declined: %s", settled.id, result.reason)
            listing = await self._store.get_listing(settled.listing_id)
        return PaymentOutcome(purchase=settled, listing=listing)

    async def _settle(
        self, purchase: Purchase, patch: PurchasePatch, result: PaymentResult
    ) -> Purchase:
        try:
            return await self._store.update_purchase(
                purchase.id, expected_status=PaymentStatus.PENDING.value, patch=patch
            )
        except ConflictError:
            # A concurrent payment settled first; undo this charge
            if result.approved:
                await self._gateway.void(result.reference)
            fresh = await self._store.get_purchase_by_id(purchase.id)
            raise AlreadySettledError(fresh.id, str(fresh.payment_status)) from None

    async def get_purchase_for_listing(self, listing_id: str, requester_id: str) -> Purchase:
        """The buyer or the seller may look at a listing's purchase."""
        purchase = await self._store.find_purchase_for_listing(listing_id)
        if purchase is None:
            raise PurchaseNotFoundError(f"listing={listing_id}")
        if requester_id not in (purchase.buyer_id, purchase.seller_id):
            raise NotWinnerError()
        return purchase
