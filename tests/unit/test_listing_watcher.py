"""Unit tests for ListingWatcher: notifications and the expiry sweep."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.am_bidding.engine import BiddingEngine
from src.am_common.enums import ListingStatus
from src.am_common.errors import StoreUnavailableError
from src.am_listing.application.watcher import ListingWatcher
from src.am_settlement.domain.engine import SettlementEngine


@pytest.fixture
def settlement(store, lifecycle, gateway) -> SettlementEngine:
    return SettlementEngine(store, lifecycle, gateway)


@pytest.fixture
def watcher(store, settlement) -> ListingWatcher:
    return ListingWatcher(store, settlement, page_size=2)


class TestSweep:
    async def test_sweep_finalizes_expired_listings(
        self, watcher, store, lifecycle, make_listing, clock
    ) -> None:
        bidding = BiddingEngine(store, lifecycle)
        with_bid = await make_listing(starting_price=100, duration=timedelta(minutes=1))
        no_bid = await make_listing(duration=timedelta(minutes=1))
        still_open = await make_listing(duration=timedelta(hours=1))
        await bidding.place_bid(with_bid.id, "alice", 500)
        clock.advance(timedelta(minutes=2))

        count = await watcher.sweep_expired()

        assert count == 2
        assert (await store.get_listing(with_bid.id)).status == ListingStatus.ENDED
        assert (await store.get_listing(no_bid.id)).status == ListingStatus.ENDED
        assert (await store.get_listing(still_open.id)).status == ListingStatus.ACTIVE
        purchases = store.all_purchases()
        assert [(p.listing_id, p.buyer_id) for p in purchases] == [(with_bid.id, "alice")]

    async def test_sweep_with_nothing_expired(self, watcher, make_listing) -> None:
        await make_listing()
        assert await watcher.sweep_expired() == 0

    async def test_sweep_loop_runs_until_stopped(self, watcher, store, make_listing, clock) -> None:
        listing = await make_listing(duration=timedelta(seconds=1))
        clock.advance(timedelta(seconds=2))

        watcher.start_sweeping(0.01)
        for _ in range(50):
            await asyncio.sleep(0.01)
            if (await store.get_listing(listing.id)).status == ListingStatus.ENDED:
                break
        await watcher.stop()

        assert (await store.get_listing(listing.id)).status == ListingStatus.ENDED

    async def test_sweep_loop_survives_unexpected_errors(self, watcher, caplog) -> None:
        calls = 0

        async def _flaky_sweep() -> int:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise TimeoutError("QueuePool limit reached")
            return 0

        watcher.sweep_expired = _flaky_sweep
        watcher.start_sweeping(0.01)
        for _ in range(50):
            await asyncio.sleep(0.01)
            if calls >= 3:
                break

        assert calls >= 3
        assert not watcher._sweep_task.done()
        assert "Expiry sweep crashed" in caplog.text
        await watcher.stop()


class TestNotifications:
    async def test_bid_notification_triggers_reconcile(
        self, watcher, store, lifecycle, make_listing, clock
    ) -> None:
        await watcher.start()
        listing = await make_listing(starting_price=100, duration=timedelta(minutes=1))
        await BiddingEngine(store, lifecycle).place_bid(listing.id, "alice", 200)
        await store.notifier.drain()
        assert store.all_purchases() == []

        clock.advance(timedelta(minutes=5))
        # Any later change on the listing is enough of a hint
        await store.notifier.publish("listings", listing.id)
        await store.notifier.drain()

        assert len(store.all_purchases()) == 1
        await watcher.stop()

    async def test_start_is_idempotent(self, watcher, store) -> None:
        store.subscribe = AsyncMock(return_value=MagicMock(unsubscribe=AsyncMock()))
        await watcher.start()
        await watcher.start()
        assert store.subscribe.await_count == 2  # listings + bids, once

    async def test_failure_is_logged_not_raised(self, store, caplog) -> None:
        settlement = MagicMock()
        settlement.finalize_if_ended = AsyncMock(side_effect=StoreUnavailableError("db down"))
        watcher = ListingWatcher(store, settlement)

        await watcher.on_change("bids", "LST-1")

        assert "db down" in caplog.text
