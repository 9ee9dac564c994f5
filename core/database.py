"""
Database engine and session management with SQLAlchemy async.

Engines are created per stage invocation and disposed when the stage
finishes; nothing here holds a module-level connection.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import Settings, settings as default_settings
from core.exceptions import DatabaseConnectionError
import logging

logger = logging.getLogger(__name__)


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine without pooling; connections die with the stage"""
    return create_async_engine(url, echo=echo, poolclass=NullPool, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """
    Yield a session owned by the caller.

    Uncommitted work is rolled back if the block raises, and the session is
    closed on every exit path.
    """
    session: AsyncSession = factory()
    try:
        yield session
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()


async def ping(session: AsyncSession, name: str) -> None:
    """Round-trip a trivial query so connectivity problems surface early"""
    try:
        await session.execute(select(1))
    except (OperationalError, DBAPIError, OSError) as e:
        raise DatabaseConnectionError(
            f"Cannot connect to {name} database",
            context={"database": name},
            original_exception=e,
        )
    logger.debug(f"Connected to {name} database")


class Databases:
    """
    Session factories for the three stores a stage may touch.

    Staging and warehouse share an engine with the control store when their
    URLs are identical.
    """

    def __init__(
        self,
        control_url: str,
        staging_url: Optional[str] = None,
        warehouse_url: Optional[str] = None,
        echo: bool = False,
    ):
        self._engines = {}
        self.control = self._factory_for(control_url, echo)
        self.staging = self._factory_for(staging_url or control_url, echo)
        self.warehouse = self._factory_for(warehouse_url or control_url, echo)

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "Databases":
        return cls(
            control_url=config.DATABASE_URL,
            staging_url=config.staging_database_url,
            warehouse_url=config.warehouse_database_url,
        )

    def _factory_for(self, url: str, echo: bool) -> async_sessionmaker:
        if url not in self._engines:
            self._engines[url] = create_engine(url, echo=echo)
        return create_session_factory(self._engines[url])

    @property
    def engines(self):
        return list(self._engines.values())

    async def dispose(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
