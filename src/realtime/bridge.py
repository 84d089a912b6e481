"""
Realtime event bridge: change feed -> message queue -> bookmark store.

The bridge owns the one long-lived resource of a session, the change-feed
subscription. It is an async context manager so the subscription is released
on every exit path, including errors and task cancellation.
"""
import asyncio
import logging
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Protocol

from schemas.realtime import ChangeEvent, ChangeEventType
from services.bookmark_store import BookmarkStore

logger = logging.getLogger(__name__)

SUBSCRIBED_EVENTS = frozenset({ChangeEventType.INSERT, ChangeEventType.DELETE})


class Subscription(Protocol):
    """Handle for an open subscription; iterates inbound change events."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...


class ChangeFeed(Protocol):
    """Backend change-feed operations."""

    async def subscribe(
        self,
        table: str,
        event_types: frozenset[ChangeEventType],
        *,
        owner_id: str | None = None,
    ) -> Subscription: ...

    async def unsubscribe(self, subscription: Subscription) -> None: ...


class RealtimeEventBridge:
    """
    Forwards change notifications for one table into a BookmarkStore.

    A pump task copies events from the subscription onto `queue`; a consumer
    task applies queued events to the store in arrival order. Tests can put
    synthetic events on `queue` directly.
    """

    def __init__(self, store: BookmarkStore, feed: ChangeFeed, table: str = "bookmarks") -> None:
        self._store = store
        self._feed = feed
        self._table = table
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._subscription: Subscription | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._consumer_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    async def __aenter__(self) -> "RealtimeEventBridge":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def open(self) -> None:
        """Subscribe and start forwarding events."""
        if self._subscription is not None:
            raise RuntimeError("Realtime bridge is already open")
        owner_id = self._store.owner_id
        logger.info("realtime_subscribe table=%s owner=%s", self._table, owner_id)
        self._subscription = await self._feed.subscribe(
            self._table, SUBSCRIBED_EVENTS, owner_id=owner_id,
        )
        self._consumer_task = asyncio.create_task(self._consume())
        self._pump_task = asyncio.create_task(self._pump(self._subscription))

    async def close(self) -> None:
        """Stop forwarding and release the subscription. Safe to call twice."""
        tasks = [t for t in (self._pump_task, self._consumer_task) if t is not None]
        self._pump_task = self._consumer_task = None
        for task in tasks:
            task.cancel()
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning("realtime_task_failed error=%r", result)
        finally:
            subscription, self._subscription = self._subscription, None
            if subscription is not None:
                logger.info("realtime_unsubscribe table=%s", self._table)
                await self._feed.unsubscribe(subscription)

    async def wait(self) -> None:
        """Block until the feed ends (or raise the error that ended it)."""
        if self._pump_task is None:
            raise RuntimeError("Realtime bridge is not open")
        await self._pump_task
        await self.drain()

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self.queue.join()

    async def _pump(self, subscription: Subscription) -> None:
        async for event in subscription:
            await self.queue.put(event)
        logger.info("realtime_feed_ended table=%s", self._table)

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                self.dispatch(event)
            except Exception:
                logger.exception("realtime_dispatch_failed event_type=%s", event.event_type)
            finally:
                self.queue.task_done()

    def dispatch(self, event: ChangeEvent) -> None:
        """Translate one change notification into a store operation."""
        logger.debug("realtime_event event_type=%s", event.event_type)
        if event.event_type == ChangeEventType.INSERT and event.new:
            self._store.apply_remote_insert(event.new)
        elif event.event_type == ChangeEventType.DELETE and event.old_id is not None:
            self._store.apply_remote_delete(event.old_id)
        else:
            logger.debug("realtime_event_ignored event_type=%s", event.event_type)
