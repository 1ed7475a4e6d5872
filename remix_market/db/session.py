"""
Async engine and session wiring.

Deployments run on PostgreSQL through asyncpg. Local runs and the test suite
use SQLite through aiosqlite.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from remix_market.config import settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Engine for `database_url`; pool sizing only applies to PostgreSQL."""
    options: dict[str, object] = {"echo": settings.log_level.upper() == "DEBUG"}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
        )
    return create_async_engine(database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Committed rows stay readable after commit; services return them to routes.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide factory bound to DATABASE_URL, created on first use."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_engine_for_url(settings.database_url)
        _session_factory = create_session_factory(_engine)
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Usage:
        @router.post("/v1/prompts/purchase")
        async def purchase(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session_factory()() as session:
        yield session


async def close_engines() -> None:
    """Dispose the pool on shutdown; the next use builds a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
