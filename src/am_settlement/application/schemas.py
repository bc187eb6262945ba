"""Pydantic schemas for am_settlement API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.am_common.cents import cents_to_display
from src.am_listing.application.schemas import ListingOut
from src.am_listing.domain.models import Purchase
from src.am_settlement.domain.engine import FinalizeResult, PaymentOutcome
from src.am_settlement.domain.payment import PaymentMethod


class PayRequest(BaseModel):
    method: Literal["card", "paypal", "bank_transfer"] = "card"
    card_last4: str | None = Field(None, pattern=r"^\d{4}$")
    holder_name: str | None = Field(None, max_length=100)

    def to_domain(self) -> PaymentMethod:
        return PaymentMethod(
            kind=self.method,
            card_last4=self.card_last4,
            holder_name=self.holder_name,
        )


class PurchaseOut(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    winning_bid_cents: int
    winning_bid_display: str
    payment_status: str
    purchase_date: datetime
    product_title: str
    product_image_url: str | None = None
    payment_reference: str | None = None

    @classmethod
    def from_domain(cls, purchase: Purchase) -> "PurchaseOut":
        return cls(
            id=purchase.id,
            listing_id=purchase.listing_id,
            buyer_id=purchase.buyer_id,
            seller_id=purchase.seller_id,
            winning_bid_cents=purchase.winning_bid_amount,
            winning_bid_display=cents_to_display(purchase.winning_bid_amount),
            payment_status=str(purchase.payment_status),
            purchase_date=purchase.purchase_date,
            product_title=purchase.product_title,
            product_image_url=purchase.product_image_url,
            payment_reference=purchase.payment_reference,
        )


class FinalizeOut(BaseModel):
    listing: ListingOut
    purchase: PurchaseOut | None
    created: bool

    @classmethod
    def from_result(cls, result: FinalizeResult) -> "FinalizeOut":
        return cls(
            listing=ListingOut.from_domain(result.listing),
            purchase=PurchaseOut.from_domain(result.purchase) if result.purchase else None,
            created=result.created,
        )


class PaymentOut(BaseModel):
    succeeded: bool
    purchase: PurchaseOut
    listing: ListingOut

    @classmethod
    def from_outcome(cls, outcome: PaymentOutcome) -> "PaymentOut":
        return cls(
            succeeded=outcome.succeeded,
            purchase=PurchaseOut.from_domain(outcome.purchase),
            listing=ListingOut.from_domain(outcome.listing),
        )
