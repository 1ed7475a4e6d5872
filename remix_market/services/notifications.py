"""
Notification Sink - Best-effort seller notifications.

Delivery happens outside the purchase transaction in its own session. A
failed delivery never affects the sale that triggered it.
"""

import asyncio
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from remix_market.db.models import Notification
from remix_market.models.domain import NotificationData, SaleNotification
from remix_market.observability.metrics import metrics

logger = get_logger(__name__)


class NotificationSink(Protocol):
    """Anything that can deliver a sale notification."""

    async def send(self, notification: SaleNotification) -> None: ...


class DatabaseNotificationSink:
    """Persists notifications to the notifications table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def send(self, notification: SaleNotification) -> None:
        async with self.session_factory() as session:
            session.add(
                Notification(
                    user_id=notification.recipient_id,
                    kind=notification.kind,
                    title=notification.title,
                    message=notification.message,
                    content_id=notification.content_id,
                    content_type=notification.content_type,
                    amount=notification.amount,
                )
            )
            await session.commit()


class NotificationDispatcher:
    """
    Fire-and-forget delivery through a sink.

    Each notification runs as a background task; failures are logged and
    discarded. `drain()` waits for in-flight deliveries (shutdown, tests).
    """

    def __init__(self, sink: NotificationSink) -> None:
        self.sink = sink
        self._pending: set[asyncio.Task[None]] = set()

    def dispatch(self, notification: SaleNotification) -> None:
        task = asyncio.create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, notification: SaleNotification) -> None:
        try:
            await self.sink.send(notification)
        except Exception as e:
            metrics.record_notification(success=False)
            logger.warning(
                "notification_delivery_failed",
                recipient_id=notification.recipient_id,
                content_id=notification.content_id,
                kind=notification.kind.value,
                error=str(e),
            )
            return

        metrics.record_notification(success=True)
        logger.info(
            "notification_delivered",
            recipient_id=notification.recipient_id,
            content_id=notification.content_id,
            kind=notification.kind.value,
        )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every dispatched notification has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


class NotificationReader:
    """Reads a user's notifications (used by the notification feed)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[NotificationData]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_notification_to_domain(row) for row in result.scalars().all()]

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        """Mark one notification as read; False if it isn't the user's."""
        stmt = (
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1


def _notification_to_domain(row: Notification) -> NotificationData:
    return NotificationData(
        notification_id=row.id,
        user_id=row.user_id,
        kind=row.kind,
        title=row.title,
        message=row.message,
        content_id=row.content_id,
        content_type=row.content_type,
        amount=row.amount,
        is_read=row.is_read,
        created_at=row.created_at,
    )
