import logging
import time

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from vehicle_sales.db.migrations import sync_database_url, upgrade_to_head

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_TRIES = 60
WAIT_SECONDS = 1


def check_db_connection() -> bool:
    """Ensure database is reachable before running migrations."""
    engine = create_engine(sync_database_url())
    try:
        for _ in range(MAX_TRIES):
            try:
                with engine.connect():
                    logger.info("Database connection successful.")
                    return True
            except OperationalError:
                logger.info("Database not ready yet, waiting %s second(s)...", WAIT_SECONDS)
                time.sleep(WAIT_SECONDS)
    finally:
        engine.dispose()
    logger.error("Could not connect to the database after multiple attempts.")
    return False


if __name__ == "__main__":
    if not check_db_connection():
        raise SystemExit(1)
    upgrade_to_head()
