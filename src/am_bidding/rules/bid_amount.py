from src.am_common.cents import MAX_CENTS
from src.am_common.errors import BidTooLowError, InvalidAmountError
from src.am_listing.domain.models import Listing


def check_bid_amount(listing: Listing, amount: int) -> None:
    """Strictly greater than the current price; equal bids are rejected."""
    if amount <= 0:
        raise InvalidAmountError(f"bid must be positive, got {amount}")
    if amount > MAX_CENTS:
        raise InvalidAmountError(f"bid too large, got {amount}")
    if amount <= listing.current_price:
        raise BidTooLowError(amount, listing.current_price)
