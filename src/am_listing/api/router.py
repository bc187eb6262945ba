"""am_listing REST endpoints.

POST /listings                       create a listing (caller is the seller)
GET  /listings                       active listings, newest first
GET  /listings/mine                  caller's own listings, any status
GET  /listings/{listing_id}          reconciled detail with countdown and top bids
POST /listings/{listing_id}/cancel   seller cancels while no bids exist
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.am_common.response import ApiResponse, success_response
from src.am_gateway.auth.dependencies import get_current_user_id
from src.am_gateway.services import Services, get_services
from src.am_listing.application.schemas import (
    CreateListingRequest,
    ListingDetailOut,
    ListingListOut,
    ListingOut,
)

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", status_code=201)
async def create_listing(
    req: CreateListingRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    listing = await services.listings.create_listing(req.to_domain(user_id))
    return success_response(ListingOut.from_domain(listing).model_dump(mode="json"), request)


@router.get("")
async def list_active_listings(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    listings = await services.listings.list_active()
    return success_response(ListingListOut.from_domain(listings).model_dump(mode="json"), request)


@router.get("/mine")
async def list_my_listings(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    listings = await services.listings.listings_by_seller(user_id)
    return success_response(ListingListOut.from_domain(listings).model_dump(mode="json"), request)


@router.get("/{listing_id}")
async def get_listing(
    listing_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    view = await services.listings.view_listing(listing_id)
    return success_response(ListingDetailOut.from_view(view).model_dump(mode="json"), request)


@router.post("/{listing_id}/cancel")
async def cancel_listing(
    listing_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    listing = await services.listings.cancel_listing(listing_id, user_id)
    return success_response(ListingOut.from_domain(listing).model_dump(mode="json"), request)
