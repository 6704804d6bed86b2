"""
Mentorflow - Application bootstrap.

Configures logging and brings the database up for whatever host process
embeds the command surface (API server, worker, management shell).
"""

import asyncio
import logging
import sys
from typing import Optional

from config import settings
from .database import init_database, close_database, get_database

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the process."""
    if settings.debug:
        resolved = logging.DEBUG
    else:
        resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    logging.basicConfig(
        level=resolved,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


async def startup(database_url: Optional[str] = None) -> bool:
    """Initialize the database and create tables."""
    logger.info(f"Starting {settings.app_name} ({settings.environment})...")

    if await init_database(database_url):
        logger.info("Database initialized")
    else:
        logger.warning("Database not configured or failed to initialize")
        return False

    health = await get_database().health_check()
    logger.info(f"Database health: {health.get('status')}")
    return True


async def shutdown() -> None:
    logger.info(f"Shutting down {settings.app_name}...")
    await close_database()


async def init_db(database_url: Optional[str] = None) -> bool:
    """Create the schema and exit. Used by deploy scripts."""
    try:
        return await startup(database_url)
    finally:
        await shutdown()


def main() -> int:
    configure_logging()
    ok = asyncio.run(init_db())
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
