"""
Startup schema upgrades through Alembic.

Alembic drives synchronous drivers, so the async URL used by the service is
rewritten before it is handed to `alembic/env.py`.
"""

from pathlib import Path

from sqlalchemy import create_engine

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from remix_market.config import settings
from remix_market.observability.logging import get_logger

logger = get_logger(__name__)

ALEMBIC_INI_PATH = Path(__file__).resolve().parents[2] / "alembic.ini"

_SYNC_DRIVERS = {"+asyncpg": "+psycopg2", "+aiosqlite": ""}


def get_sync_database_url(url: str | None = None) -> str:
    """`url` (default DATABASE_URL) with its async driver swapped for a sync one."""
    url = url or settings.database_url
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        url = url.replace(async_driver, sync_driver)
    return url


def _alembic_config(sync_url: str) -> Config:
    config = Config(str(ALEMBIC_INI_PATH))
    config.attributes["database_url"] = sync_url
    return config


def run_migrations() -> None:
    """Upgrade the schema to head, doing nothing when it is already current."""
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("migrations_skipped", reason="alembic.ini not found", path=str(ALEMBIC_INI_PATH))
        return

    sync_url = get_sync_database_url()
    config = _alembic_config(sync_url)
    head = ScriptDirectory.from_config(config).get_current_head()

    engine = create_engine(sync_url)
    try:
        with engine.connect() as conn:
            current = MigrationContext.configure(conn).get_current_revision()
        if current == head:
            logger.info("schema_current", revision=current)
            return

        logger.info("schema_upgrading", from_revision=current, to_revision=head)
        command.upgrade(config, "head")
        logger.info("schema_upgraded", revision=head)
    except Exception as e:
        logger.error("schema_upgrade_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
    finally:
        engine.dispose()
