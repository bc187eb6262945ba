"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  3xxx: Listing / lifecycle
  4xxx: Bid
  5xxx: Purchase / settlement
  9xxx: System / store
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


# --- 3xxx: Listing ---

class NotFoundError(AppError):
    """Base for every lookup miss; subclasses pick the code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 404)


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3001, f"Listing not found: {listing_id}")


class AuctionNotActiveError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3002, f"Auction is not active: {listing_id}", 422)


class InvalidTransitionError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3003, f"Invalid status transition: {detail}", 422)


class NotSellerError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3004, f"Only the seller may modify listing {listing_id}", 403)


class InvalidListingError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3005, f"Invalid listing: {detail}", 422)


# --- 4xxx: Bid ---

class BidTooLowError(AppError):
    def __init__(self, amount: int, current_price: int) -> None:
        super().__init__(
            4001,
            f"Bid of {amount} cents must be higher than current price {current_price} cents",
            422,
        )
        self.amount = amount
        self.current_price = current_price


class SelfBidNotAllowedError(AppError):
    def __init__(self) -> None:
        super().__init__(4002, "Sellers may not bid on their own listing", 422)


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4003, f"Invalid amount: {detail}", 422)


# --- 5xxx: Purchase ---

class PurchaseNotFoundError(NotFoundError):
    def __init__(self, ref: str) -> None:
        super().__init__(5001, f"Purchase not found: {ref}")


class NotWinnerError(AppError):
    def __init__(self) -> None:
        super().__init__(5002, "You are not the winner of this auction", 403)


class AlreadySettledError(AppError):
    def __init__(self, purchase_id: str, status: str) -> None:
        super().__init__(
            5003, f"Purchase {purchase_id} is already settled (status={status})", 409
        )


# --- 9xxx: System ---

class ConflictError(AppError):
    """Optimistic write lost: the stored row no longer matches the expectation."""

    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Concurrent modification: {detail}", 409)


class StoreUnavailableError(AppError):
    def __init__(self, detail: str = "Store unavailable") -> None:
        super().__init__(9004, detail, 503)


class ConsistencyError(AppError):
    """A multi-row write left state that violates an invariant. Needs reconciliation."""

    def __init__(self, detail: str) -> None:
        super().__init__(9005, f"Consistency violation: {detail}", 500)


class StoreRejectedError(AppError):
    """The store refused a well-formed request (value out of column range, constraint)."""

    def __init__(self, detail: str) -> None:
        super().__init__(9006, f"Store rejected the write: {detail}", 422)
