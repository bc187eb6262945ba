"""ListingWatcher: turns change notifications into reconciliation.

A notification only says "listing X changed". The watcher never looks at a
payload; it re-runs finalize_if_ended(X), which re-reads the store. The
periodic sweep covers the one change nobody publishes: time passing.
"""

import asyncio
import logging
from typing import Any

from src.am_common.enums import ChangeTable
from src.am_common.errors import AppError
from src.am_listing.domain.lifecycle import is_expired
from src.am_listing.domain.repository import ListingStoreProtocol
from src.am_settlement.domain.engine import SettlementEngine

logger = logging.getLogger(__name__)

_WATCHED_TABLES = (ChangeTable.LISTINGS, ChangeTable.BIDS)


class ListingWatcher:
    def __init__(
        self,
        store: ListingStoreProtocol,
        settlement: SettlementEngine,
        page_size: int = 50,
    ) -> None:
        self._store = store
        self._settlement = settlement
        self._page_size = page_size
        self._subscriptions: list[Any] = []
        self._sweep_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._subscriptions:
            return
        for table in _WATCHED_TABLES:
            self._subscriptions.append(
                await self._store.subscribe(table.value, None, self.on_change)
            )
        logger.info("Listing watcher started")

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        for sub in self._subscriptions:
            await sub.unsubscribe()
        self._subscriptions.clear()
        logger.info("Listing watcher stopped")

    async def on_change(self, table: str, listing_id: str) -> None:
        try:
            await self._settlement.finalize_if_ended(listing_id)
        except AppError as e:
            logger.error(
                "Reconciliation after %s change failed for %s: [%d] %s",
                table, listing_id, e.code, e.message,
            )

    async def sweep_expired(self) -> int:
        """Finalize every ACTIVE listing whose end time has passed. Returns the count."""
        now = self._settlement.clock.now()
        expired_ids = [
            listing.id
            async for listing in self._store.list_active_listings(page_size=self._page_size)
            if is_expired(listing, now)
        ]
        for listing_id in expired_ids:
            await self.on_change(ChangeTable.LISTINGS.value, listing_id)
        if expired_ids:
            logger.info("Sweep finalized %d expired listing(s)", len(expired_ids))
        return len(expired_ids)

    def start_sweeping(self, interval_seconds: float) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(interval_seconds))

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.sweep_expired()
            except AppError as e:
                logger.error("Expiry sweep failed: [%d] %s", e.code, e.message)
            except Exception:
                logger.exception("Expiry sweep crashed; retrying in %.1fs", interval_seconds)
            await asyncio.sleep(interval_seconds)
