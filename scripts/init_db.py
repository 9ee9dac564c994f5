import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import AsyncEngine
from core.config import settings
from core.database import Databases
from core.logging import setup_logging
# Import all models to ensure they are registered
import models  # noqa: F401
from models.base import Base

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        # Create all tables defined in models
        await conn.run_sync(Base.metadata.create_all)


async def init_database(config=settings):
    """Create every table on each distinct store (control, staging, warehouse)"""
    databases = Databases.from_settings(config)
    try:
        for engine in databases.engines:
            logger.info(f"Creating tables on {engine.url.render_as_string(hide_password=True)}...")
            await create_tables(engine)
        logger.info("Tables created successfully.")
    finally:
        await databases.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
