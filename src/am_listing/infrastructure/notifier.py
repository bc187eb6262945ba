"""Change notifiers: push "row changed" hints to subscribers.

A notification is (table, listing_id) and nothing more. Subscribers must
re-read authoritative state from the store; the payload is never trusted.

InProcessNotifier fans out inside one event loop (in-memory store, tests).
RedisChangeNotifier uses Redis pub/sub so every API process sees changes
made by the others. Channel layout: "{prefix}:{table}", message = listing_id.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.am_common.errors import StoreUnavailableError
from src.am_listing.domain.repository import ChangeCallback

logger = logging.getLogger(__name__)


class ChangeNotifierProtocol(Protocol):
    async def publish(self, table: str, listing_id: str) -> None: ...

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> Any: ...


async def _deliver(
    callback: ChangeCallback, table: str, listing_id: str
) -> None:
    """Run one callback; a failing subscriber must not break the publisher."""
    try:
        await callback(table, listing_id)
    except Exception:
        logger.exception("Change subscriber failed: table=%s listing=%s", table, listing_id)


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


class InProcessSubscription:
    def __init__(
        self,
        notifier: "InProcessNotifier",
        table: str,
        listing_id: str | None,
        on_change: ChangeCallback,
    ) -> None:
        self._notifier = notifier
        self.table = table
        self.listing_id = listing_id
        self.on_change = on_change
        self.active = True

    def matches(self, table: str, listing_id: str) -> bool:
        return self.active and self.table == table and (
            self.listing_id is None or self.listing_id == listing_id
        )

    async def unsubscribe(self) -> None:
        self.active = False
        self._notifier.remove(self)


class InProcessNotifier:
    """Delivers each publish to matching subscribers as background tasks."""

    def __init__(self) -> None:
        self._subscriptions: list[InProcessSubscription] = []
        self._pending: set[asyncio.Task[None]] = set()

    async def publish(self, table: str, listing_id: str) -> None:
        for sub in list(self._subscriptions):
            if sub.matches(table, listing_id):
                task = asyncio.create_task(_deliver(sub.on_change, table, listing_id))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> InProcessSubscription:
        sub = InProcessSubscription(self, table, listing_id, on_change)
        self._subscriptions.append(sub)
        return sub

    def remove(self, sub: InProcessSubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    async def drain(self) -> None:
        """Wait until every delivery (including ones they trigger) has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


# ---------------------------------------------------------------------------
# Redis pub/sub
# ---------------------------------------------------------------------------


class RedisSubscription:
    def __init__(self, pubsub: Any, task: "asyncio.Task[None]") -> None:
        self._pubsub = pubsub
        self._task = task

    async def unsubscribe(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class RedisChangeNotifier:
    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]],
        channel_prefix: str = "am:changes",
        reconnect_delay: float = 1.0,
    ) -> None:
        self._redis_factory = redis_factory
        self._prefix = channel_prefix
        self._reconnect_delay = reconnect_delay

    def channel(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    async def _client(self) -> aioredis.Redis:
        return await self._redis_factory()

    async def publish(self, table: str, listing_id: str) -> None:
        try:
            client = await self._client()
            await client.publish(self.channel(table), listing_id)
        except RedisError as e:
            raise StoreUnavailableError(f"Change notification failed: {e}") from e

    async def subscribe(
        self, table: str, listing_id: str | None, on_change: ChangeCallback
    ) -> RedisSubscription:
        try:
            client = await self._client()
            pubsub = client.pubsub(ignore_subscribe_messages=True)
            await pubsub.subscribe(self.channel(table))
        except RedisError as e:
            raise StoreUnavailableError(f"Change subscription failed: {e}") from e

        task = asyncio.create_task(self._listen(pubsub, table, listing_id, on_change))
        logger.info("Subscribed to %s (listing=%s)", self.channel(table), listing_id or "*")
        return RedisSubscription(pubsub, task)

    async def _listen(
        self,
        pubsub: Any,
        table: str,
        listing_id: str | None,
        on_change: ChangeCallback,
    ) -> None:
        """Deliver messages until unsubscribed, resubscribing after connection loss."""
        channel = self.channel(table)
        while True:
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    changed_id = str(message["data"])
                    if listing_id is not None and changed_id != listing_id:
                        continue
                    await _deliver(on_change, table, changed_id)
                return
            except RedisError as e:
                logger.warning("Lost %s subscription: %s; resubscribing in %.1fs", channel, e, self._reconnect_delay)
            except Exception:
                logger.exception("Listener for %s failed; resubscribing in %.1fs", channel, self._reconnect_delay)

            await asyncio.sleep(self._reconnect_delay)
            try:
                await pubsub.subscribe(channel)
            except RedisError as e:
                logger.warning("Resubscribe to %s failed: %s", channel, e)
