"""Database readiness check and Alembic migration runner."""
import time
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from consignment.core import get_logger, setup_logging
from consignment.core_settings import get_settings
from consignment.infrastructure.db import create_db_engine

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

def wait_for_db(url: str, max_attempts: int = 30, delay: float = 1.0) -> int:
    """Block until the database accepts connections; returns the attempt that succeeded."""
    engine = create_db_engine(url)
    try:
        for attempt in range(1, max_attempts + 1):
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info(f"Database ready after {attempt} attempt(s)")
                return attempt
            except OperationalError as e:
                logger.warning(f"Database not ready (attempt {attempt}): {e}")
                if attempt < max_attempts:
                    time.sleep(delay)
        raise RuntimeError("Database not ready after max attempts")
    finally:
        engine.dispose()

def alembic_config(url: Optional[str] = None) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    # ConfigParser interpolation treats "%" specially
    config.set_main_option("sqlalchemy.url", (url or get_settings().database_url).replace("%", "%%"))
    return config

def run_migrations(url: Optional[str] = None, revision: str = "head") -> None:
    settings = get_settings()
    url = url or settings.database_url
    wait_for_db(url, settings.DB_CONNECT_ATTEMPTS, settings.DB_CONNECT_DELAY)
    logger.info(f"Running database migrations to {revision}")
    command.upgrade(alembic_config(url), revision)
    logger.info("Database migrations completed")

def rollback_migrations(url: Optional[str] = None, revision: str = "base") -> None:
    logger.info(f"Downgrading database to {revision}")
    command.downgrade(alembic_config(url), revision)

if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.SERVICE_NAME, settings.LOG_LEVEL, settings.ENVIRONMENT, settings.SERVICE_VERSION)
    run_migrations()
