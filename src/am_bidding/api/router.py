"""am_bidding REST endpoints.

POST /listings/{listing_id}/bids     place a bid as the caller
GET  /listings/{listing_id}/bids     bid history, leading bid first
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from src.am_bidding.schemas import BidListOut, PlaceBidRequest, PlaceBidResponse
from src.am_common.cents import parse_amount
from src.am_common.response import ApiResponse, success_response
from src.am_gateway.auth.dependencies import get_current_user_id
from src.am_gateway.services import Services, get_services
from src.am_listing.application.schemas import BidOut

router = APIRouter(prefix="/listings", tags=["bids"])


@router.post("/{listing_id}/bids")
async def place_bid(
    listing_id: str,
    req: PlaceBidRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    result = await services.bidding.place_bid(listing_id, user_id, parse_amount(req.amount))
    return success_response(PlaceBidResponse.from_result(result).model_dump(mode="json"), request)


@router.get("/{listing_id}/bids")
async def list_bids(
    listing_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
    limit: int | None = Query(None, ge=1, le=100),
) -> ApiResponse:
    bids = await services.bidding.bid_history(listing_id, limit)
    out = BidListOut(items=[BidOut.from_domain(b) for b in bids])
    return success_response(out.model_dump(mode="json"), request)
