"""NotificationDeriver: pure function from (user, listings, bids, purchases) to notices.

There is no "already notified" state here: the same inputs always give the
same set. Read/unread tracking belongs to whoever displays the notices.
"""

from collections import defaultdict
from collections.abc import Iterable

from src.am_common.enums import ListingStatus, NoticeKind, PaymentStatus
from src.am_listing.domain.lifecycle import leading_bid
from src.am_listing.domain.models import Bid, Listing, Purchase
from src.am_notification.domain.models import Notice

_CLOSED_STATUSES = (ListingStatus.ENDED, ListingStatus.SOLD)


def _group_bids(bids: Iterable[Bid]) -> dict[str, list[Bid]]:
    grouped: dict[str, list[Bid]] = defaultdict(list)
    for bid in bids:
        grouped[bid.listing_id].append(bid)
    return grouped


def derive_notices(
    user_id: str,
    listings: Iterable[Listing],
    bids: Iterable[Bid],
    purchases: Iterable[Purchase],
) -> frozenset[Notice]:
    """Derive LOST and WON_PENDING_PAYMENT notices for one user.

    `bids` must contain every bid on each listing in `listings` (not only the
    user's), since "lost" depends on who leads.
    """
    by_listing = _group_bids(bids)
    notices: set[Notice] = set()

    for listing in listings:
        if listing.status not in _CLOSED_STATUSES:
            continue
        listing_bids = by_listing.get(listing.id, [])
        if not any(b.bidder_id == user_id for b in listing_bids):
            continue
        leader = leading_bid(listing_bids)
        if leader is not None and leader.bidder_id != user_id:
            notices.add(
                Notice(
                    kind=NoticeKind.LOST,
                    listing_id=listing.id,
                    title=listing.title,
                    amount=leader.amount,
                )
            )

    for purchase in purchases:
        if purchase.buyer_id == user_id and purchase.payment_status == PaymentStatus.PENDING:
            notices.add(
                Notice(
                    kind=NoticeKind.WON_PENDING_PAYMENT,
                    listing_id=purchase.listing_id,
                    title=purchase.product_title,
                    amount=purchase.winning_bid_amount,
                    purchase_id=purchase.id,
                )
            )

    return frozenset(notices)


def won_listings(
    user_id: str, listings: Iterable[Listing], bids: Iterable[Bid]
) -> list[Listing]:
    """ENDED/SOLD listings whose leading bid belongs to the user."""
    by_listing = _group_bids(bids)
    won: list[Listing] = []
    for listing in listings:
        if listing.status not in _CLOSED_STATUSES:
            continue
        leader = leading_bid(by_listing.get(listing.id, []))
        if leader is not None and leader.bidder_id == user_id:
            won.append(listing)
    return won
