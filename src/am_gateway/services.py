"""Wiring of the auction services.

`build_services` assembles one object graph around a store, a clock and a
payment gateway. `get_services` is the FastAPI dependency for the
process-wide graph; tests swap it through app.dependency_overrides.
"""

from dataclasses import dataclass

from config.settings import settings
from src.am_bidding.engine import BiddingEngine
from src.am_common.clock import Clock, SystemClock
from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.application.service import ListingApplicationService
from src.am_listing.application.watcher import ListingWatcher
from src.am_listing.domain.repository import ListingStoreProtocol
from src.am_notification.application.service import NotificationService
from src.am_settlement.domain.engine import SettlementEngine
from src.am_settlement.domain.payment import PaymentGatewayProtocol, SimulatedPaymentGateway


@dataclass
class Services:
    store: ListingStoreProtocol
    lifecycle: AuctionLifecycle
    listings: ListingApplicationService
    bidding: BiddingEngine
    settlement: SettlementEngine
    notifications: NotificationService
    watcher: ListingWatcher


def build_services(
    store: ListingStoreProtocol,
    clock: Clock | None = None,
    gateway: PaymentGatewayProtocol | None = None,
) -> Services:
    lifecycle = AuctionLifecycle(store, clock or SystemClock())
    settlement = SettlementEngine(
        store,
        lifecycle,
        gateway or SimulatedPaymentGateway(approve=settings.PAYMENT_APPROVE_ALL),
    )
    return Services(
        store=store,
        lifecycle=lifecycle,
        listings=ListingApplicationService(
            store,
            lifecycle,
            bid_history_limit=settings.BID_HISTORY_LIMIT,
            page_size=settings.ACTIVE_LISTINGS_PAGE_SIZE,
        ),
        bidding=BiddingEngine(store, lifecycle, max_attempts=settings.BID_MAX_RETRIES),
        settlement=settlement,
        notifications=NotificationService(store, lifecycle),
        watcher=ListingWatcher(store, settlement, page_size=settings.ACTIVE_LISTINGS_PAGE_SIZE),
    )


_services: Services | None = None


def get_services() -> Services:
    """Process-wide services backed by PostgreSQL + Redis. Created lazily."""
    global _services  # noqa: PLW0603
    if _services is None:
        from src.am_listing.infrastructure.persistence import get_listing_store

        _services = build_services(get_listing_store())
    return _services
