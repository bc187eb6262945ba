from decimal import Decimal

from pydantic import BaseModel

from src.am_bidding.engine import BidResult
from src.am_listing.application.schemas import BidOut, ListingOut


class PlaceBidRequest(BaseModel):
    amount: Decimal  # currency units, e.g. "150.50"


class PlaceBidResponse(BaseModel):
    bid: BidOut
    listing: ListingOut

    @classmethod
    def from_result(cls, result: BidResult) -> "PlaceBidResponse":
        return cls(
            bid=BidOut.from_domain(result.bid),
            listing=ListingOut.from_domain(result.listing),
        )


class BidListOut(BaseModel):
    items: list[BidOut]
