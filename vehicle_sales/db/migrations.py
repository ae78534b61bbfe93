import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from vehicle_sales.core.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def sync_database_url(url: str | None = None) -> str:
    """Alembic runs synchronously; swap the async driver for its sync sibling."""
    url = url or settings.database_url
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


def alembic_config(url: str | None = None) -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", sync_database_url(url))
    return cfg


def upgrade_to_head(url: str | None = None) -> None:
    """Applies all pending Alembic revisions."""
    logger.info("Running database migrations...")
    command.upgrade(alembic_config(url), "head")
    logger.info("Migrations applied successfully.")
