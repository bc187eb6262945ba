"""Auction lifecycle rules: pure functions, no I/O.

States and the only legal moves between them:

    ACTIVE ──(now >= end_time)──▶ ENDED ──(purchase COMPLETED)──▶ SOLD
       │
       └──(seller, no bids)──▶ CANCELLED

SOLD and CANCELLED are terminal. ENDED with no bids is a resting state.
The store-backed side of reconciliation lives in
src.am_listing.application.lifecycle.
"""

from datetime import datetime, timedelta

from src.am_common.cents import ONE_CENT
from src.am_common.enums import ListingStatus
from src.am_common.errors import InvalidTransitionError
from src.am_listing.domain.models import Bid, Listing

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    ListingStatus.ACTIVE.value: frozenset({ListingStatus.ENDED.value, ListingStatus.CANCELLED.value}),
    ListingStatus.ENDED.value: frozenset({ListingStatus.SOLD.value}),
    ListingStatus.SOLD.value: frozenset(),
    ListingStatus.CANCELLED.value: frozenset(),
}

AUCTION_ENDED_LABEL = "Auction Ended"


def check_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current -> target is a legal move."""
    allowed = ALLOWED_TRANSITIONS.get(current)
    if allowed is None or target not in allowed:
        raise InvalidTransitionError(f"{current} -> {target}")


def is_expired(listing: Listing, now: datetime) -> bool:
    return now >= listing.end_time


def effective_status(listing: Listing, now: datetime) -> str:
    """Status an observer should act on, even if the stored row is stale."""
    if listing.status == ListingStatus.ACTIVE and is_expired(listing, now):
        return ListingStatus.ENDED.value
    return str(listing.status)


def needs_end_transition(listing: Listing, now: datetime) -> bool:
    return listing.status == ListingStatus.ACTIVE and is_expired(listing, now)


def accepts_bids(listing: Listing, now: datetime) -> bool:
    return effective_status(listing, now) == ListingStatus.ACTIVE


def time_remaining(listing: Listing, now: datetime) -> timedelta:
    return max(timedelta(0), listing.end_time - now)


def format_time_remaining(remaining: timedelta) -> str:
    """Render a countdown like '1d 2h 3m 4s'.

    Larger units are shown only once they (or a unit above them) are non-zero;
    seconds are always shown. Zero or negative renders as 'Auction Ended'.
    """
    total_seconds = int(remaining.total_seconds())
    if total_seconds <= 0:
        return AUCTION_ENDED_LABEL
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts: list[str] = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0 or days > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or hours > 0 or days > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


def minimum_next_bid(listing: Listing) -> int:
    return listing.current_price + ONE_CENT


def bid_sort_key(bid: Bid) -> tuple[int, datetime, int]:
    """Ascending key that puts the leading bid first."""
    return (-bid.amount, bid.placed_at, bid.sequence)


def leading_bid(bids: list[Bid]) -> Bid | None:
    """Highest amount; ties go to the earliest timestamp, then arrival order."""
    if not bids:
        return None
    return min(bids, key=bid_sort_key)
