"""Payment gateway port and the simulated implementation.

Real card processing is out of scope; SimulatedPaymentGateway approves or
declines deterministically so settlement can be exercised end to end.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from src.am_listing.domain.models import Purchase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentMethod:
    kind: str = "card"  # card / paypal / bank_transfer
    card_last4: str | None = None
    holder_name: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    approved: bool
    reference: str
    reason: str | None = None


class PaymentGatewayProtocol(Protocol):
    async def charge(self, purchase: Purchase, method: PaymentMethod) -> PaymentResult: ...

    async def void(self, reference: str) -> None: ...


class SimulatedPaymentGateway:
    """Stateless simulator: every charge gets a fresh reference, nothing is kept."""

    def __init__(self, approve: bool = True) -> None:
        self._approve = approve

    async def charge(self, purchase: Purchase, method: PaymentMethod) -> PaymentResult:
        reference = f"sim_{uuid.uuid4().hex[:16]}"
        logger.debug(
            "Simulated %s charge %s: purchase=%s amount=%d",
            method.kind, reference, purchase.id, purchase.winning_bid_amount,
        )
        if self._approve:
            return PaymentResult(approved=True, reference=reference)
        return PaymentResult(approved=False, reference=reference, reason="declined by simulator")

    async def void(self, reference: str) -> None:
        logger.info("Simulated charge %s voided", reference)
