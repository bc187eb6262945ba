"""am_notification REST endpoints.

GET /notifications                   derived LOST / WON_PENDING_PAYMENT notices for the caller
GET /me/won                          ended listings the caller leads
GET /me/bids                         every bid the caller placed
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.am_bidding.schemas import BidListOut
from src.am_common.response import ApiResponse, success_response
from src.am_gateway.auth.dependencies import get_current_user_id
from src.am_gateway.services import Services, get_services
from src.am_listing.application.schemas import BidOut, ListingListOut
from src.am_notification.application.schemas import NoticeListOut, NoticeOut

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
async def list_notifications(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    notices = await services.notifications.notices_for(user_id)
    out = NoticeListOut(items=[NoticeOut.from_domain(n) for n in notices])
    return success_response(out.model_dump(mode="json"), request)


@router.get("/me/won")
async def list_won_listings(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    listings = await services.notifications.won_items(user_id)
    return success_response(ListingListOut.from_domain(listings).model_dump(mode="json"), request)


@router.get("/me/bids")
async def list_my_bids(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    bids = await services.notifications.bids_by(user_id)
    out = BidListOut(items=[BidOut.from_domain(b) for b in bids])
    return success_response(out.model_dump(mode="json"), request)
