"""Self-bid prevention: sellers may not bid on their own listings."""

from src.am_common.errors import SelfBidNotAllowedError
from src.am_listing.domain.models import Listing


def check_not_seller(listing: Listing, bidder_id: str) -> None:
    if listing.is_seller(bidder_id):
        raise SelfBidNotAllowedError()
