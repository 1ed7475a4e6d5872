"""
Pytest Configuration and Centralized Fixtures.

Provides reusable mocks and fixtures for testing:
- Mock database sessions and query results
- A real SQLite database (aiosqlite) per test for transaction tests
- Ledger seeding and content item helpers
- Prompt transaction service wired to a notification dispatcher
- API test client with dependency overrides
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./remix_market_test.db")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("TRACING_ENABLED", "false")

from remix_market.api.dependencies import CallerIdentity
from remix_market.db.models import Base, ContentItem, UserAccount
from remix_market.db.session import create_engine_for_url, create_session_factory
from remix_market.models.api import ContentType
from remix_market.models.domain import ContentItemData, PromptDisplay, PurchaseIntent, SaveIntent
from remix_market.services.content import ContentStore
from remix_market.services.ledger import CreditLedger
from remix_market.services.notifications import (
    DatabaseNotificationSink,
    NotificationDispatcher,
)
from remix_market.services.prompt_transactions import PromptTransactionService

# ============================================================================
# Mock Database Session Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> AsyncMock:
    """Create a mock database session with sensible defaults."""
    session = AsyncMock(spec=AsyncSession)

    # Basic operations
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.get = AsyncMock(return_value=None)

    # Default execute returns empty result
    mock_result = MagicMock()
    mock_result.scalar_one_or_none = MagicMock(return_value=None)
    mock_result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=[])))
    mock_result.rowcount = 1
    session.execute = AsyncMock(return_value=mock_result)

    return session


def create_mock_result(scalar: object = None, rows: list | None = None, rowcount: int = 1):
    """Factory for a mock execute() result."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=rows or [])))
    result.rowcount = rowcount
    return result


# ============================================================================
# SQLite Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh file-backed SQLite database with the full schema."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def open_account(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[str, int], Awaitable[int]]:
    """Open a ledger account with a starting balance."""

    async def _open(user_id: str, credits: int = 0) -> int:
        async with session_factory() as session:
            return await CreditLedger(session).open_account(user_id, credits)

    return _open


@pytest.fixture
def read_balance(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[str], Awaitable[int]]:
    """Read a balance through a fresh session."""

    async def _read(user_id: str) -> int:
        async with session_factory() as session:
            return await CreditLedger(session).get_balance(user_id)

    return _read


@pytest.fixture
def add_content(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Insert a content item."""

    async def _add(
        content_id: str,
        content_type: ContentType = ContentType.VIDEO,
        owner_id: str | None = "seller-1",
        remix_price: int | None = None,
        prompt_text: str = "a neon city at dusk",
        is_public: bool = True,
        allow_remix: bool = True,
        age_minutes: int = 0,
    ) -> None:
        async with session_factory() as session:
            session.add(
                ContentItem(
                    id=content_id,
                    content_type=content_type,
                    owner_id=owner_id,
                    owner_username=f"{owner_id}-name" if owner_id else None,
                    remix_price=remix_price,
                    prompt_text=prompt_text,
                    media_url=f"https://cdn.example.com/{content_id}.mp4",
                    thumbnail_url=f"https://cdn.example.com/{content_id}.jpg",
                    model="sora-2",
                    is_public=is_public,
                    allow_remix=allow_remix,
                    created_at=datetime.now(UTC) - timedelta(minutes=age_minutes),
                )
            )
            await session.commit()

    return _add


@pytest.fixture
async def dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[NotificationDispatcher, None]:
    """Dispatcher writing notifications to the test database."""
    dispatcher = NotificationDispatcher(DatabaseNotificationSink(session_factory))
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def make_service(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
) -> Callable[[AsyncSession], PromptTransactionService]:
    """Build a service on a given session (one session per concurrent caller)."""

    def _make(session: AsyncSession) -> PromptTransactionService:
        return PromptTransactionService(
            session,
            dispatcher=dispatcher,
            payout_percent=80,
            max_attempts=5,
            retry_backoff_seconds=0.01,
        )

    return _make


@pytest.fixture
def service(
    session: AsyncSession,
    make_service: Callable[[AsyncSession], PromptTransactionService],
) -> PromptTransactionService:
    return make_service(session)


# ============================================================================
# Intent Fixtures
# ============================================================================


def make_purchase_intent(
    buyer_id: str = "buyer-1",
    seller_id: str = "seller-1",
    content_id: str = "video-1",
    content_type: ContentType = ContentType.VIDEO,
    price: int = 5,
    prompt: str = "a neon city at dusk",
) -> PurchaseIntent:
    """Factory function to create purchase intents."""
    return PurchaseIntent(
        content_id=content_id,
        content_type=content_type,
        buyer_id=buyer_id,
        seller_id=seller_id,
        price=price,
        prompt_snapshot=prompt,
        display=PromptDisplay(
            media_url=f"https://cdn.example.com/{content_id}.mp4",
            thumbnail_url=f"https://cdn.example.com/{content_id}.jpg",
            model="sora-2",
            seller_username=f"{seller_id}-name",
        ),
    )


def make_save_intent(
    buyer_id: str = "buyer-1",
    seller_id: str | None = "seller-1",
    content_id: str = "image-1",
    content_type: ContentType = ContentType.IMAGE,
    prompt: str = "watercolor fox in the snow",
) -> SaveIntent:
    """Factory function to create save intents."""
    return SaveIntent(
        content_id=content_id,
        content_type=content_type,
        buyer_id=buyer_id,
        seller_id=seller_id,
        prompt_snapshot=prompt,
    )


@pytest.fixture
def purchase_intent() -> PurchaseIntent:
    """Standard purchase: buyer-1 buys video-1 from seller-1 for 5 credits."""
    return make_purchase_intent()


@pytest.fixture
def save_intent() -> SaveIntent:
    """Standard save: buyer-1 saves the free image-1 from seller-1."""
    return make_save_intent()


# ============================================================================
# Mock Account Fixtures
# ============================================================================


def create_mock_account(user_id: str = "buyer-1", credits: int = 20) -> MagicMock:
    """Factory function to create mock UserAccount objects."""
    account = MagicMock(spec=UserAccount)
    account.user_id = user_id
    account.credits = credits
    account.created_at = datetime.now(UTC)
    account.updated_at = datetime.now(UTC)
    return account


# ============================================================================
# Content Store Fixtures
# ============================================================================


def make_content_item(
    price: int = 5,
    owner_id: str | None = "seller-1",
    content_id: str = "video-1",
    content_type: ContentType = ContentType.VIDEO,
) -> ContentItemData:
    """Factory function to create stored content listings."""
    return ContentItemData(
        content_id=content_id,
        content_type=content_type,
        owner_id=owner_id,
        price=price,
        prompt_text="stored prompt text",
        media_url=f"https://cdn.example.com/{content_id}.mp4",
        thumbnail_url=None,
        model="sora-2",
        owner_username="creator",
        created_at=datetime(2026, 10, 17, 12, 0, tzinfo=UTC),
    )


@pytest.fixture
def content_store(app: FastAPI) -> AsyncMock:
    """Content store override returning a paid video listing by default."""
    from remix_market.api.dependencies import get_content_store

    store = AsyncMock(spec=ContentStore)
    store.get_content.return_value = make_content_item()
    app.dependency_overrides[get_content_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_content_store, None)


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def caller() -> CallerIdentity:
    """Authenticated caller."""
    return CallerIdentity(user_id="buyer-1")


@pytest.fixture
def app() -> FastAPI:
    """Create FastAPI app for testing."""
    from remix_market.main import app as main_app

    return main_app


@pytest.fixture
def mock_prompt_service() -> AsyncMock:
    """Prompt transaction service with every operation mocked."""
    return AsyncMock(spec=PromptTransactionService)


@pytest.fixture
def client(app: FastAPI, db_session: AsyncMock, mock_prompt_service: AsyncMock):
    """Test client with mocked database and prompt service."""
    from remix_market.api.dependencies import get_prompt_service
    from remix_market.db.session import get_db

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_prompt_service] = lambda: mock_prompt_service

    yield TestClient(app)

    app.dependency_overrides.clear()
