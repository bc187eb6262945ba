"""Unit tests for SettlementEngine: finalize, create-once purchase, payment."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.am_bidding.engine import BiddingEngine
from src.am_common.enums import ListingStatus, PaymentStatus
from src.am_common.errors import (
    AlreadySettledError,
    BidTooLowError,
    ConflictError,
    NotWinnerError,
    PurchaseNotFoundError,
)
from src.am_listing.domain.models import Purchase, PurchasePatch
from src.am_settlement.domain.engine import SettlementEngine
from src.am_settlement.domain.payment import PaymentMethod, SimulatedPaymentGateway


@pytest.fixture
def bidding(store, lifecycle) -> BiddingEngine:
    return BiddingEngine(store, lifecycle)


@pytest.fixture
def settlement(store, lifecycle, gateway) -> SettlementEngine:
    return SettlementEngine(store, lifecycle, gateway)


async def _ended_with_bids(make_listing, bidding, clock, bids):
    listing = await make_listing(starting_price=10000)
    for bidder, amount in bids:
        await bidding.place_bid(listing.id, bidder, amount)
    clock.advance(timedelta(hours=2))
    return listing


class TestAuctionScenario:
    async def test_full_auction(self, store, bidding, settlement, make_listing, clock) -> None:
        listing = await make_listing(starting_price=10000, duration=timedelta(hours=1))

        with pytest.raises(BidTooLowError):
            await bidding.place_bid(listing.id, "A", 10000)
        assert (await bidding.place_bid(listing.id, "A", 15000)).listing.current_price == 15000
        with pytest.raises(BidTooLowError):
            await bidding.place_bid(listing.id, "B", 15000)
        assert (await bidding.place_bid(listing.id, "B", 17500)).listing.current_price == 17500

        clock.advance(timedelta(hours=1, seconds=1))
        result = await settlement.finalize_if_ended(listing.id)

        assert result.listing.status == ListingStatus.ENDED
        assert result.created
        purchase = result.purchase
        assert purchase.buyer_id == "B"
        assert purchase.winning_bid_amount == 17500
        assert purchase.payment_status == PaymentStatus.PENDING

        outcome = await settlement.pay(purchase.id, "B")
        assert outcome.succeeded
        assert outcome.purchase.payment_status == PaymentStatus.COMPLETED
        assert outcome.listing.status == ListingStatus.SOLD

        with pytest.raises(NotWinnerError):
            await settlement.pay(purchase.id, "A")

    async def test_zero_bids_ends_without_purchase(self, store, settlement, make_listing, clock) -> None:
        listing = await make_listing(duration=timedelta(minutes=10))
        clock.advance(timedelta(minutes=10))

        result = await settlement.finalize_if_ended(listing.id)

        assert result.listing.status == ListingStatus.ENDED
        assert result.purchase is None
        assert store.all_purchases() == []


class TestFinalize:
    async def test_active_listing_untouched(self, store, settlement, make_listing) -> None:
        listing = await make_listing()
        result = await settlement.finalize_if_ended(listing.id)
        assert result.listing.status == ListingStatus.ACTIVE
        assert result.purchase is None

    async def test_concurrent_finalize_creates_exactly_one_purchase(
        self, store, bidding, settlement, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(
            make_listing, bidding, clock, [("alice", 15000), ("bob", 16000)]
        )

        results = await asyncio.gather(
            *[settlement.finalize_if_ended(listing.id) for _ in range(20)]
        )

        assert len(store.all_purchases()) == 1
        assert sum(r.created for r in results) == 1
        assert {r.purchase.id for r in results} == {store.all_purchases()[0].id}
        assert all(r.listing.status == ListingStatus.ENDED for r in results)

    async def test_repeat_finalize_is_idempotent(
        self, store, bidding, settlement, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        first = await settlement.finalize_if_ended(listing.id)
        second = await settlement.finalize_if_ended(listing.id)
        assert first.created and not second.created
        assert second.purchase.id == first.purchase.id

    async def test_sold_listing_returns_existing_purchase(
        self, store, bidding, settlement, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase
        await settlement.pay(purchase.id, "alice")

        result = await settlement.finalize_if_ended(listing.id)

        assert result.listing.status == ListingStatus.SOLD
        assert result.purchase.id == purchase.id
        assert not result.created

    async def test_cancelled_listing_never_settles(self, store, settlement, lifecycle, make_listing, clock) -> None:
        listing = await make_listing(seller_id="seller")
        await lifecycle.cancel(listing.id, "seller")
        clock.advance(timedelta(days=1))

        result = await settlement.finalize_if_ended(listing.id)

        assert result.listing.status == ListingStatus.CANCELLED
        assert result.purchase is None

    async def test_repairs_completed_purchase_on_ended_listing(
        self, store, bidding, settlement, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase
        # Payment committed but the SOLD write never happened
        await store.update_purchase(
            purchase.id, "PENDING", PurchasePatch(payment_status="COMPLETED")
        )

        result = await settlement.finalize_if_ended(listing.id)

        assert result.listing.status == ListingStatus.SOLD


class TestPay:
    async def test_non_winner_changes_nothing(
        self, store, bidding, settlement, gateway, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(
            make_listing, bidding, clock, [("alice", 15000), ("bob", 16000)]
        )
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase
        before_listing = await store.get_listing(listing.id)

        with pytest.raises(NotWinnerError):
            await settlement.pay(purchase.id, "alice")

        assert await store.get_purchase_by_id(purchase.id) == purchase
        assert await store.get_listing(listing.id) == before_listing
        assert gateway.charges == []

    async def test_second_pay_is_already_settled(
        self, store, bidding, settlement, gateway, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase

        await settlement.pay(purchase.id, "alice")
        with pytest.raises(AlreadySettledError):
            await settlement.pay(purchase.id, "alice")

        assert len(gateway.charges) == 1
        assert (await store.get_listing(listing.id)).status == ListingStatus.SOLD

    async def test_concurrent_pay_charges_once(
        self, store, bidding, settlement, gateway, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase

        results = await asyncio.gather(
            settlement.pay(purchase.id, "alice"),
            settlement.pay(purchase.id, "alice"),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert sum(isinstance(r, AlreadySettledError) for r in results) == 1
        # Every charge that did not settle was voided
        assert len(gateway.charges) - len(gateway.voided) == 1
        assert (await store.get_listing(listing.id)).status == ListingStatus.SOLD

    async def test_declined_payment_fails_purchase(
        self, store, lifecycle, bidding, make_listing, clock, declining_gateway
    ) -> None:
        settlement = SettlementEngine(store, lifecycle, declining_gateway)
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase

        outcome = await settlement.pay(purchase.id, "alice", PaymentMethod(card_last4="0002"))

        assert not outcome.succeeded
        assert outcome.purchase.payment_status == PaymentStatus.FAILED
        assert outcome.purchase.payment_reference is not None
        assert outcome.listing.status == ListingStatus.ENDED
        with pytest.raises(AlreadySettledError):
            await settlement.pay(purchase.id, "alice")

    async def test_lost_settle_race_voids_charge(
        self, store, lifecycle, bidding, make_listing, clock, gateway
    ) -> None:
        settlement = SettlementEngine(store, lifecycle, gateway)
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        purchase = (await settlement.finalize_if_ended(listing.id)).purchase

        real_update = store.update_purchase

        async def _settled_elsewhere(purchase_id, expected_status, patch):
            await real_update(purchase_id, expected_status, PurchasePatch(payment_status="COMPLETED"))
            raise ConflictError("settled elsewhere")

        store.update_purchase = AsyncMock(side_effect=_settled_elsewhere)

        with pytest.raises(AlreadySettledError):
            await settlement.pay(purchase.id, "alice")
        assert len(gateway.voided) == 1

    async def test_unknown_purchase(self, settlement) -> None:
        with pytest.raises(PurchaseNotFoundError):
            await settlement.pay("PUR-missing", "alice")


class TestGetPurchaseForListing:
    async def test_buyer_and_seller_may_read(
        self, bidding, settlement, make_listing, clock
    ) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        await settlement.finalize_if_ended(listing.id)

        assert (await settlement.get_purchase_for_listing(listing.id, "alice")).buyer_id == "alice"
        assert (await settlement.get_purchase_for_listing(listing.id, "seller")).seller_id == "seller"

    async def test_others_rejected(self, bidding, settlement, make_listing, clock) -> None:
        listing = await _ended_with_bids(make_listing, bidding, clock, [("alice", 15000)])
        await settlement.finalize_if_ended(listing.id)
        with pytest.raises(NotWinnerError):
            await settlement.get_purchase_for_listing(listing.id, "mallory")

    async def test_missing(self, settlement, make_listing) -> None:
        listing = await make_listing()
        with pytest.raises(PurchaseNotFoundError):
            await settlement.get_purchase_for_listing(listing.id, "alice")


class TestSimulatedPaymentGateway:
    async def test_keeps_no_per_charge_state(self, listing_factory) -> None:
        gateway = SimulatedPaymentGateway()
        purchase = Purchase(
            id="PUR-1",
            listing_id="LST-1",
            buyer_id="alice",
            seller_id="seller",
            winning_bid_amount=15000,
            payment_status=PaymentStatus.PENDING.value,
            purchase_date=listing_factory().end_time,
            product_title="Camera",
        )
        before = dict(vars(gateway))

        results = [await gateway.charge(purchase, PaymentMethod()) for _ in range(100)]
        for result in results:
            await gateway.void(result.reference)

        assert vars(gateway) == before
        assert len({r.reference for r in results}) == 100
        assert all(r.approved for r in results)

    async def test_declines_when_configured(self, listing_factory) -> None:
        gateway = SimulatedPaymentGateway(approve=False)
        purchase = Purchase(
            id="PUR-2",
            listing_id="LST-1",
            buyer_id="alice",
            seller_id="seller",
            winning_bid_amount=15000,
            payment_status=PaymentStatus.PENDING.value,
            purchase_date=listing_factory().end_time,
            product_title="Camera",
        )
        result = await gateway.charge(purchase, PaymentMethod(kind="paypal"))
        assert not result.approved
        assert result.reason == "declined by simulator"
