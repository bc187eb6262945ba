from datetime import datetime

from src.am_common.errors import AuctionNotActiveError
from src.am_listing.domain.lifecycle import accepts_bids
from src.am_listing.domain.models import Listing


def check_auction_active(listing: Listing, now: datetime) -> None:
    """Reject unless the listing is ACTIVE *and* its end time is still ahead.

    A stale ACTIVE status with a past end_time is treated as ended.
    """
    if not accepts_bids(listing, now):
        raise AuctionNotActiveError(listing.id)
