"""SqlListingStore: PostgreSQL implementation of ListingStoreProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.

Every dependent write is a single guarded statement:
  - UPDATE ... WHERE status = :expected_status [AND current_price = :expected_price]
  - apply_bid: guarded price UPDATE + bid INSERT in one transaction
  - purchases: INSERT ... ON CONFLICT (listing_id) DO NOTHING
0 rows from a guarded UPDATE means another writer got there first -> ConflictError.

Each operation owns its session and transaction. Change notifications are
published only after commit.
"""

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.am_common.enums import ChangeTable
from src.am_common.errors import (
    ConflictError,
    ListingNotFoundError,
    PurchaseNotFoundError,
    StoreRejectedError,
    StoreUnavailableError,
)
from src.am_common.id_generator import (
    BID_PREFIX,
    LISTING_PREFIX,
    PURCHASE_PREFIX,
    generate_id,
)
from src.am_listing.domain.models import (
    Bid,
    Listing,
    ListingPatch,
    NewBid,
    NewListing,
    NewPurchase,
    Purchase,
    PurchasePatch,
)
from src.am_listing.domain.repository import ChangeCallback
from src.am_listing.infrastructure.notifier import ChangeNotifierProtocol

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL: listings
# ---------------------------------------------------------------------------

_LISTING_COLUMNS = """
    id, title, description, seller_id, starting_price, current_price,
    end_time, status, image_url, created_at, updated_at
"""

_GET_LISTING_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE id = :listing_id
""")

_LIST_LISTINGS_BY_IDS_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE id IN :listing_ids
""").bindparams(bindparam("listing_ids", expanding=True))

_LIST_ACTIVE_PAGE_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE status = 'ACTIVE'
      AND (
          CAST(:cursor_ts AS TIMESTAMPTZ) IS NULL
          OR created_at > CAST(:cursor_ts AS TIMESTAMPTZ)
          OR (
              created_at = CAST(:cursor_ts AS TIMESTAMPTZ)
              AND id > CAST(:cursor_id AS TEXT)
          )
      )
    ORDER BY created_at ASC, id ASC
    LIMIT :limit
""")

_LIST_BY_SELLER_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE seller_id = :seller_id
    ORDER BY created_at DESC, id DESC
""")

_INSERT_LISTING_SQL = text(f"""
    INSERT INTO listings (id, title, description, seller_id,
        starting_price, current_price, end_time, status, image_url)
    VALUES (:id, :title, :description, :seller_id,
        :starting_price, :starting_price, :end_time, 'ACTIVE', :image_url)
    RETURNING {_LISTING_COLUMNS}
""")

_UPDATE_LISTING_SQL = text(f"""
    UPDATE listings
    SET status = COALESCE(CAST(:status AS TEXT), status),
        current_price = COALESCE(CAST(:current_price AS BIGINT), current_price),
        updated_at = NOW()
    WHERE id = :listing_id
      AND status = :expected_status
      AND (CAST(:expected_price AS BIGINT) IS NULL
           OR current_price = CAST(:expected_price AS BIGINT))
    RETURNING {_LISTING_COLUMNS}
""")

_RAISE_PRICE_SQL = text(f"""
    UPDATE listings
    SET current_price = :amount,
        updated_at = NOW()
    WHERE id = :listing_id
      AND status = 'ACTIVE'
      AND current_price = :expected_price
      AND end_time > :now
      AND :amount > current_price
    RETURNING {_LISTING_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: bids
# ---------------------------------------------------------------------------

_BID_COLUMNS = "id, listing_id, bidder_id, amount, placed_at, sequence"

_INSERT_BID_SQL = text(f"""
    INSERT INTO bids (id, listing_id, bidder_id, amount, placed_at)
    VALUES (:id, :listing_id, :bidder_id, :amount, :placed_at)
    RETURNING {_BID_COLUMNS}
""")

_LIST_BIDS_FOR_LISTING_SQL = text(f"""
    SELECT {_BID_COLUMNS}
    FROM bids
    WHERE listing_id = :listing_id
    ORDER BY amount DESC, placed_at ASC, sequence ASC
    LIMIT :limit
""")

_LIST_BIDS_BY_BIDDER_SQL = text(f"""
    SELECT {_BID_COLUMNS}
    FROM bids
    WHERE bidder_id = :bidder_id
    ORDER BY placed_at DESC, sequence DESC
""")

# ---------------------------------------------------------------------------
# SQL: purchases
# ---------------------------------------------------------------------------

_PURCHASE_COLUMNS = """
    id, listing_id, buyer_id, seller_id, winning_bid_amount, payment_status,
    purchase_date, product_title, product_image_url, payment_reference
"""

_INSERT_PURCHASE_SQL = text(f"""
    INSERT INTO purchases (id, listing_id, buyer_id, seller_id,
        winning_bid_amount, payment_status, purchase_date,
        product_title, product_image_url)
    VALUES (:id, :listing_id, :buyer_id, :seller_id,
        :winning_bid_amount, :payment_status, :purchase_date,
        :product_title, :product_image_url)
    ON CONFLICT (listing_id) DO NOTHING
    RETURNING {_PURCHASE_COLUMNS}
""")

_GET_PURCHASE_BY_LISTING_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases
    WHERE listing_id = :listing_id
""")

_GET_PURCHASE_BY_ID_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases
    WHERE id = :purchase_id
""")

_LIST_PURCHASES_BY_BUYER_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases
    WHERE buyer_id = :buyer_id
    ORDER BY purchase_date DESC, id DESC
""")

_UPDATE_PURCHASE_SQL = text(f"""
    UPDATE purchases
    SET payment_status = :payment_status,
        purchase_date = COALESCE(CAST(:purchase_date AS TIMESTAMPTZ), purchase_date),
        payment_reference = COALESCE(CAST(:payment_reference AS TEXT), payment_reference),
        updated_at = NOW()
    WHERE id = :purchase_id
      AND payment_status = :expected_status
    RETURNING {_PURCHASE_COLUMNS}
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_listing(row: Any) -> Listing:
    return Listing(
        id=row.id,
        title=row.title,
        description=row.description,
        seller_id=row.seller_id,
        starting_price=row.starting_price,
        current_price=row.current_price,
        end_time=row.end_time,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        image_url=row.image_url,
    )


def _row_to_bid(row: Any) -> Bid:
    return Bid(
        id=row.id,
        listing_id=row.listing_id,
        bidder_id=row.bidder_id,
        amount=row.amount,
        placed_at=row.placed_at,
        sequence=row.sequence,
    )


def _row_to_purchase(row: Any) -> Purchase:
    return Purchase(
        id=row.id,
        listing_id=row.listing_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        winning_bid_amount=row.winning_bid_amount,
        payment_status=row.payment_status,
        purchase_date=row.purchase_date,
        product_title=row.product_title,
        product_image_url=row.product_image_url,
        payment_reference=row.payment_reference,
    )


@contextmanager
def _store_errors() -> Iterator[None]:
    """Map driver failures onto AppErrors.

    Rejected values (out of column range, constraint violations) become
    StoreRejectedError; every other database failure, pool timeouts included,
    becomes StoreUnavailableError.
    """
    try:
        yield
    except (DataError, IntegrityError) as e:
        raise StoreRejectedError(str(e.orig or e)) from e
    except (SQLAlchemyError, OSError) as e:
        raise StoreUnavailableError(f"Database unavailable: {e}") from e


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlListingStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: ChangeNotifierProtocol,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier

    async def _notify(self, table: ChangeTable, listing_id: str) -> None:
        # The write is already committed; a lost hint only delays observers
        try:
            await self._notifier.publish(table.value, listing_id)
        except StoreUnavailableError as e:
            logger.warning("Dropped change notification %s/%s: %s", table.value, listing_id, e.message)

    async def _fetch_listing(self, db: AsyncSession, listing_id: str) -> Listing:
        row = (await db.execute(_GET_LISTING_SQL, {"listing_id": listing_id})).fetchone()
        if row is None:
            raise ListingNotFoundError(listing_id)
        return _row_to_listing(row)

    # --- listings ---

    async def get_listing(self, listing_id: str) -> Listing:
        with _store_errors():
            async with self._session_factory() as db:
                return await self._fetch_listing(db, listing_id)

    async def list_active_listings(self, page_size: int = 50) -> AsyncIterator[Listing]:
        cursor_ts: datetime | None = None
        cursor_id: str | None = None
        while True:
            with _store_errors():
                async with self._session_factory() as db:
                    result = await db.execute(
                        _LIST_ACTIVE_PAGE_SQL,
                        {"cursor_ts": cursor_ts, "cursor_id": cursor_id, "limit": page_size},
                    )
                    page = [_row_to_listing(row) for row in result.fetchall()]
            for listing in page:
                yield listing
            if len(page) < page_size:
                return
            cursor_ts, cursor_id = page[-1].created_at, page[-1].id

    async def list_listings(self, listing_ids: list[str]) -> list[Listing]:
        if not listing_ids:
            return []
        with _store_errors():
            async with self._session_factory() as db:
                result = await db.execute(
                    _LIST_LISTINGS_BY_IDS_SQL, {"listing_ids": list(listing_ids)}
                )
                return [_row_to_listing(row) for row in result.fetchall()]

    async def list_listings_by_seller(self, seller_id: str) -> list[Listing]:
        with _store_errors():
            async with self._session_factory() as db:
                result = await db.execute(_LIST_BY_SELLER_SQL, {"seller_id": seller_id})
                return [_row_to_listing(row) for row in result.fetchall()]

    async def insert_listing(self, new: NewListing) -> Listing:
        with _store_errors():
            async with self._session_factory() as db, db.begin():
                row = (
                    await db.execute(
                        _INSERT_LISTING_SQL,
                        {
                            "id": generate_id(LISTING_PREFIX),
                            "title": new.title,
                            "description": new.description,
                            "seller_id": new.seller_id,
                            "starting_price": new.starting_price,
                            "end_time": new.end_time,
                            "image_url": new.image_url,
                        },
                    )
                ).fetchone()
        listing = _row_to_listing(row)
        await self._notify(ChangeTable.LISTINGS, listing.id)
        return listing

    async def update_listing(
        self,
        listing_id: str,
        expected_status: str,
        patch: ListingPatch,
        expected_price: int | None = None,
    ) -> Listing:
        with _store_errors():
            async with self._session_factory() as db, db.begin():
                row = (
                    await db.execute(
                        _UPDATE_LISTING_SQL,
                        {
                            "listing_id": listing_id,
                            "status": patch.status,
                            "current_price": patch.current_price,
                            "expected_status": expected_status,
                            "expected_price": expected_price,
                        },
                    )
                ).fetchone()
                if row is None:
                    current = await self._fetch_listing(db, listing_id)
                    raise ConflictError(
                        f"listing {listing_id} is {current.status}/{current.current_price}, "
                        f"expected {expected_status}/{expected_price}"
                    )
        await self._notify(ChangeTable.LISTINGS, listing_id)
        return _row_to_listing(row)

    # --- bids ---

    async def list_bids_for_listing(
        self, listing_id: str, limit: int | None = None
    ) -> list[Bid]:
        with _store_errors():
            async with self._session_factory() as db:
                result = await db.execute(
                    _LIST_BIDS_FOR_LISTING_SQL, {"listing_id": listing_id, "limit": limit}
                )
                return [_row_to_bid(row) for row in result.fetchall()]

    async def list_bids_by_bidder(self, bidder_id: str) -> list[Bid]:
        with _store_errors():
            async with self._session_factory() as db:
                result = await db.execute(_LIST_BIDS_BY_BIDDER_SQL, {"bidder_id": bidder_id})
                return [_row_to_bid(row) for row in result.fetchall()]

    async def _insert_bid(self, db: AsyncSession, new: NewBid) -> Bid:
        row = (
            await db.execute(
                _INSERT_BID_SQL,
                {
                    "id": generate_id(BID_PREFIX),
                    "listing_id": new.listing_id,
                    "bidder_id": new.bidder_id,
                    "amount": new.amount,
                    "placed_at": new.placed_at,
                },
            )
        ).fetchone()
        return _row_to_bid(row)

    async def insert_bid(self, new: NewBid) -> Bid:
        with _store_errors():
            async with self._session_factory() as db, db.begin():
                await self._fetch_listing(db, new.listing_id)
                bid = await self._insert_bid(db, new)
        await self._notify(ChangeTable.BIDS, new.listing_id)
        return bid

    async def apply_bid(
        self, listing_id: str, expected_price: int, new: NewBid, now: datetime
    ) -> tuple[Listing, Bid]:
        with _store_errors():
            # One transaction: either both rows change or neither does
            async with self._session_factory() as db, db.begin():
                row = (
                    await db.execute(
                        _RAISE_PRICE_SQL,
                        {
                            "listing_id": listing_id,
                            "amount": new.amount,
                            "expected_price": expected_price,
                            "now": now,
                        },
                    )
                ).fetchone()
                if row is None:
                    await self._fetch_listing(db, listing_id)
                    raise ConflictError(f"listing {listing_id} changed before bid could apply")
                bid = await self._insert_bid(db, new)
        await self._notify(ChangeTable.BIDS, listing_id)
        await self._notify(ChangeTable.LISTINGS, listing_id)
        return _row_to_listing(row), bid

    # --- purchases ---

    async def get_purchase(self, listing_id: str, buyer_id: str) -> Purchase:
        purchase = await self.find_purchase_for_listing(listing_id)
        if purchase is None or purchase.buyer_id != buyer_id:
            raise PurchaseNotFoundError(f"listing={listing_id} buyer={buyer_id}")
        return purchase

    async def get_purchase_by_id(self, purchase_id: str) -> Purchase:
        with _store_errors():
            async with self._session_factory() as db:
                row = (
                    await db.execute(_GET_PURCHASE_BY_ID_SQL, {"purchase_id": purchase_id})
                ).fetchone()
        if row is None:
            raise PurchaseNotFoundError(purchase_id)
        return _row_to_purchase(row)

    async def find_purchase_for_listing(self, listing_id: str) -> Purchase | None:
        with _store_errors():
            async with self._session_factory() as db:
                row = (
                    await db.execute(_GET_PURCHASE_BY_LISTING_SQL, {"listing_id": listing_id})
                ).fetchone()
        return _row_to_purchase(row) if row else None

    async def list_purchases_by_buyer(self, buyer_id: str) -> list[Purchase]:
        with _store_errors():
            async with self._session_factory() as db:
                result = await db.execute(_LIST_PURCHASES_BY_BUYER_SQL, {"buyer_id": buyer_id})
                return [_row_to_purchase(row) for row in result.fetchall()]

    async def insert_purchase_if_absent(
        self, new: NewPurchase
    ) -> tuple[Purchase, bool]:
        with _store_errors():
            async with self._session_factory() as db, db.begin():
                row = (
                    await db.execute(
                        _INSERT_PURCHASE_SQL,
                        {
                            "id": generate_id(PURCHASE_PREFIX),
                            "listing_id": new.listing_id,
                            "buyer_id": new.buyer_id,
                            "seller_id": new.seller_id,
                            "winning_bid_amount": new.winning_bid_amount,
                            "payment_status": new.payment_status,
                            "purchase_date": new.purchase_date,
                            "product_title": new.product_title,
                            "product_image_url": new.product_image_url,
                        },
                    )
                ).fetchone()
                created = row is not None
                if not created:
                    row = (
                        await db.execute(
                            _GET_PURCHASE_BY_LISTING_SQL, {"listing_id": new.listing_id}
                        )
                    ).fetchone()
        if created:
            await self._notify(ChangeTable.PURCHASES, new.listing_id)
        return _row_to_purchase(row), created

    async def update_purchase(
        self, purchase_id: str, expected_status: str, patch: PurchasePatch
    ) -> Purchase:
        with _store_errors():
            async with self._session_factory() as db, db.begin():
                row = (
                    await db.execute(
                        _UPDATE_PURCHASE_SQL,
                        {
                            "purchase_id": purchase_id,
                            "payment_status": patch.payment_status,
                            "purchase_date": patch.purchase_date,
                            "payment_reference": patch.payment_reference,
                            "expected_status": expected_status,
                        },
                    )
                ).fetchone()
                if row is None:
                    existing = (
                        await db.execute(_GET_PURCHASE_BY_ID_SQL, {"purchase_id": purchase_id})
                    ).fetchone()
                    if existing is None:
                        raise PurchaseNotFoundError(purchase_id)
                    raise ConflictError(
                        f"purchase {purchase_id} status is {existing.payment_status}, "
                        f"expected {expected_status}"
                    )
        purchase = _row_to_purchase(row)
        await self._notify(ChangeTable.PURCHASES, purchase.listing_id)
        return purchase

    # --- change notification ---

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> Any:
        return await self._notifier.subscribe(table, listing_id, on_change)


_store: SqlListingStore | None = None


def get_listing_store() -> SqlListingStore:
    """Process-wide store bound to the configured database and Redis."""
    global _store  # noqa: PLW0603
    if _store is None:
        from config.settings import settings
        from src.am_common.database import async_session_factory
        from src.am_common.redis_client import get_redis
        from src.am_listing.infrastructure.notifier import RedisChangeNotifier

        _store = SqlListingStore(
            async_session_factory,
            RedisChangeNotifier(get_redis, settings.CHANGES_CHANNEL_PREFIX),
        )
    return _store
