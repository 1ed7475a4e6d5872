"""
FastAPI Dependencies - Caller identity and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from remix_market.db.session import get_db, get_session_factory
from remix_market.services.content import ContentStore
from remix_market.services.ledger import CreditLedger
from remix_market.services.notifications import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    NotificationReader,
)
from remix_market.services.prompt_transactions import PromptTransactionService

logger = get_logger(__name__)


@dataclass
class CallerIdentity:
    """User identity asserted by the upstream auth gateway."""

    user_id: str


async def get_caller(
    x_user_id: str | None = Header(None, alias="X-User-Id"),
) -> CallerIdentity:
    """
    FastAPI dependency resolving the authenticated caller.

    Token verification happens at the gateway; this service trusts the
    X-User-Id header it forwards.

    Raises:
        HTTPException 401 if the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        logger.warning("caller_identity_missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return CallerIdentity(user_id=x_user_id.strip())


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher writing notifications through their own sessions."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(DatabaseNotificationSink(get_session_factory()))
    return _dispatcher


def get_prompt_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PromptTransactionService:
    return PromptTransactionService(db, dispatcher=dispatcher)


def get_content_store(db: AsyncSession = Depends(get_db)) -> ContentStore:
    return ContentStore(db)


def get_ledger(db: AsyncSession = Depends(get_db)) -> CreditLedger:
    return CreditLedger(db)


def get_notification_reader(db: AsyncSession = Depends(get_db)) -> NotificationReader:
    return NotificationReader(db)
