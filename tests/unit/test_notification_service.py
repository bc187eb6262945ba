"""Unit tests for NotificationService: store-backed derivation."""

from datetime import timedelta

from src.am_bidding.engine import BiddingEngine
from src.am_common.enums import ListingStatus, NoticeKind
from src.am_notification.application.service import NotificationService
from src.am_settlement.domain.engine import SettlementEngine


async def test_notices_follow_auction_outcome(store, lifecycle, gateway, make_listing, clock) -> None:
    bidding = BiddingEngine(store, lifecycle)
    settlement = SettlementEngine(store, lifecycle, gateway)
    service = NotificationService(store, lifecycle)
    listing = await make_listing(starting_price=100, duration=timedelta(minutes=30))
    await bidding.place_bid(listing.id, "alice", 200)
    await bidding.place_bid(listing.id, "bob", 300)

    assert await service.notices_for("alice") == []

    clock.advance(timedelta(hours=1))
    # Nobody finalized yet: reading notices reconciles the listing on the way
    alice_notices = await service.notices_for("alice")
    assert [n.kind for n in alice_notices] == [NoticeKind.LOST]
    assert (await store.get_listing(listing.id)).status == ListingStatus.ENDED

    await settlement.finalize_if_ended(listing.id)
    bob_notices = await service.notices_for("bob")
    assert [n.kind for n in bob_notices] == [NoticeKind.WON_PENDING_PAYMENT]

    purchase = bob_notices[0].purchase_id
    await settlement.pay(purchase, "bob")
    assert await service.notices_for("bob") == []
    assert [n.kind for n in await service.notices_for("alice")] == [NoticeKind.LOST]


async def test_won_items_and_bids(store, lifecycle, make_listing, clock) -> None:
    bidding = BiddingEngine(store, lifecycle)
    service = NotificationService(store, lifecycle)
    won = await make_listing(starting_price=100, duration=timedelta(minutes=5))
    lost = await make_listing(starting_price=100, duration=timedelta(minutes=5))
    await bidding.place_bid(won.id, "alice", 500)
    await bidding.place_bid(lost.id, "alice", 200)
    await bidding.place_bid(lost.id, "bob", 300)

    assert await service.won_items("alice") == []
    clock.advance(timedelta(minutes=6))

    assert [lst.id for lst in await service.won_items("alice")] == [won.id]
    assert len(await service.bids_by("alice")) == 2
