"""
Snapshot Feeds - Polling subscriptions over store queries.

A subscription re-runs a query on an interval and yields the result only
when it differs from the previous snapshot. `unsubscribe()` ends the stream.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from remix_market.config import settings
from remix_market.models.domain import NotificationData
from remix_market.services.notifications import NotificationReader

logger = get_logger(__name__)

S = TypeVar("S")


class Subscription(Generic[S]):
    """
    Async iterator of snapshots produced by polling `fetch`.

    Usage:
        subscription = feed.subscribe("user-1")
        async for snapshot in subscription:
            ...
        # elsewhere
        subscription.unsubscribe()
    """

    def __init__(self, fetch: Callable[[], Awaitable[S]], interval_seconds: float) -> None:
        self._fetch = fetch
        self._interval = interval_seconds
        self._stopped = asyncio.Event()

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def unsubscribe(self) -> None:
        self._stopped.set()

    def __aiter__(self) -> AsyncIterator[S]:
        return self._snapshots()

    async def _snapshots(self) -> AsyncIterator[S]:
        # Per iteration, so every `async for` starts with a full snapshot.
        has_snapshot = False
        last: S | None = None
        while not self._stopped.is_set():
            snapshot = await self._fetch()
            if not has_snapshot or snapshot != last:
                has_snapshot = True
                last = snapshot
                yield snapshot
                if self._stopped.is_set():
                    break
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue


class NotificationFeed:
    """Live view of a user's notifications."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float | None = None,
        page_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.feed_poll_interval_seconds
        )
        self.page_size = page_size or settings.feed_page_size

    def subscribe(self, user_id: str) -> Subscription[list[NotificationData]]:
        async def fetch() -> list[NotificationData]:
            async with self.session_factory() as session:
                return await NotificationReader(session).list_for_user(user_id, self.page_size)

        logger.debug("notification_feed_subscribed", user_id=user_id)
        return Subscription(fetch, self.interval_seconds)
