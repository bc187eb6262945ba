"""am_settlement REST endpoints.

POST /listings/{listing_id}/finalize  end an expired listing, create its purchase
GET  /listings/{listing_id}/purchase  purchase record (buyer or seller only)
POST /purchases/{purchase_id}/pay     winner pays for a PENDING purchase
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.am_common.response import ApiResponse, success_response
from src.am_gateway.auth.dependencies import get_current_user_id
from src.am_gateway.services import Services, get_services
from src.am_settlement.application.schemas import (
    FinalizeOut,
    PaymentOut,
    PayRequest,
    PurchaseOut,
)

router = APIRouter(tags=["settlement"])


@router.post("/listings/{listing_id}/finalize")
async def finalize_listing(
    listing_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    result = await services.settlement.finalize_if_ended(listing_id)
    return success_response(FinalizeOut.from_result(result).model_dump(mode="json"), request)


@router.get("/listings/{listing_id}/purchase")
async def get_listing_purchase(
    listing_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> ApiResponse:
    purchase = await services.settlement.get_purchase_for_listing(listing_id, user_id)
    return success_response(PurchaseOut.from_domain(purchase).model_dump(mode="json"), request)


@router.post("/purchases/{purchase_id}/pay")
async def pay_purchase(
    purchase_id: str,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
    req: PayRequest | None = None,
) -> ApiResponse:
    method = req.to_domain() if req is not None else None
    outcome = await services.settlement.pay(purchase_id, user_id, method)
    return success_response(PaymentOut.from_outcome(outcome).model_dump(mode="json"), request)
