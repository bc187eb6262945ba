"""Notice value objects. Frozen so a derivation result can be a set."""

from dataclasses import dataclass

from src.am_common.enums import NoticeKind


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    listing_id: str
    title: str
    amount: int  # winning bid for WON_PENDING_PAYMENT, leading bid for LOST
    purchase_id: str | None = None
