"""Shared test fixtures."""

import os

# Settings are read at import time; JWT_SECRET has no default
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from src.am_common.clock import FixedClock
from src.am_common.enums import ListingStatus
from src.am_gateway.services import Services, build_services, get_services
from src.am_listing.application.lifecycle import AuctionLifecycle
from src.am_listing.domain.models import Listing, NewListing, Purchase
from src.am_listing.infrastructure.memory_store import InMemoryListingStore
from src.am_settlement.domain.payment import PaymentMethod, PaymentResult, SimulatedPaymentGateway
from src.main import app

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

ListingFactory = Callable[..., Awaitable[Listing]]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def store(clock: FixedClock) -> InMemoryListingStore:
    return InMemoryListingStore(clock=clock)


@pytest.fixture
def lifecycle(store: InMemoryListingStore, clock: FixedClock) -> AuctionLifecycle:
    return AuctionLifecycle(store, clock)


class RecordingPaymentGateway(SimulatedPaymentGateway):
    """Simulated gateway that remembers what it was asked to do."""

    def __init__(self, approve: bool = True) -> None:
        super().__init__(approve)
        self.charges: list[tuple[str, int]] = []
        self.voided: list[str] = []

    async def charge(self, purchase: Purchase, method: PaymentMethod) -> PaymentResult:
        self.charges.append((purchase.id, purchase.winning_bid_amount))
        return await super().charge(purchase, method)

    async def void(self, reference: str) -> None:
        self.voided.append(reference)
        await super().void(reference)


@pytest.fixture
def gateway() -> RecordingPaymentGateway:
    return RecordingPaymentGateway(approve=True)


@pytest.fixture
def declining_gateway() -> RecordingPaymentGateway:
    return RecordingPaymentGateway(approve=False)


@pytest.fixture
def services(
    store: InMemoryListingStore, clock: FixedClock, gateway: RecordingPaymentGateway
) -> Services:
    return build_services(store, clock, gateway)


@pytest.fixture
def listing_factory(clock: FixedClock) -> Callable[..., Listing]:
    """Build a Listing value without touching any store."""

    def _build(**kwargs: Any) -> Listing:
        defaults: dict[str, Any] = {
            "id": "LST-1",
            "title": "Vintage Camera",
            "description": "",
            "seller_id": "seller",
            "starting_price": 10000,
            "current_price": 10000,
            "end_time": clock.now() + timedelta(hours=1),
            "status": ListingStatus.ACTIVE.value,
            "created_at": clock.now(),
            "updated_at": clock.now(),
        }
        defaults.update(kwargs)
        return Listing(**defaults)

    return _build


@pytest.fixture
def make_listing(store: InMemoryListingStore, clock: FixedClock) -> ListingFactory:
    """Insert a listing directly into the store (no service validation)."""

    async def _make(
        seller_id: str = "seller",
        starting_price: int = 10000,
        duration: timedelta = timedelta(hours=1),
        title: str = "Vintage Camera",
    ) -> Listing:
        return await store.insert_listing(
            NewListing(
                title=title,
                description="Good condition",
                seller_id=seller_id,
                starting_price=starting_price,
                end_time=clock.now() + duration,
            )
        )

    return _make


@pytest.fixture
async def client(services: Services) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the in-memory services."""
    app.dependency_overrides[get_services] = lambda: services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
