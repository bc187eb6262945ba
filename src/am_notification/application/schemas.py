"""Pydantic schemas for am_notification API responses."""

from pydantic import BaseModel

from src.am_common.cents import cents_to_display
from src.am_common.enums import NoticeKind
from src.am_notification.domain.models import Notice


def _message(notice: Notice) -> str:
    amount = cents_to_display(notice.amount)
    if notice.kind == NoticeKind.WON_PENDING_PAYMENT:
        return f"You won '{notice.title}' for {amount}. Payment is pending."
    return f"The auction for '{notice.title}' ended. Winning bid: {amount}."


class NoticeOut(BaseModel):
    kind: str
    listing_id: str
    title: str
    amount_cents: int
    amount_display: str
    purchase_id: str | None = None
    message: str

    @classmethod
    def from_domain(cls, notice: Notice) -> "NoticeOut":
        return cls(
            kind=notice.kind.value,
            listing_id=notice.listing_id,
            title=notice.title,
            amount_cents=notice.amount,
            amount_display=cents_to_display(notice.amount),
            purchase_id=notice.purchase_id,
            message=_message(notice),
        )


class NoticeListOut(BaseModel):
    items: list[NoticeOut]
