"""
Unit tests for engine/session helpers and table creation
"""

import pytest
from sqlalchemy import inspect, select, func

from core.config import Settings
from core.database import Databases, create_engine, create_session_factory, ping, session_scope
from core.exceptions import DatabaseConnectionError
from models.process_config import ProcessConfig
from scripts.init_db import init_database


@pytest.mark.asyncio
async def test_ping_healthy_database(session_factory):
    async with session_scope(session_factory) as session:
        await ping(session, "control")


@pytest.mark.asyncio
async def test_ping_unreachable_database(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'warehouse.db'}")
    try:
        async with session_scope(create_session_factory(engine)) as session:
            with pytest.raises(DatabaseConnectionError) as exc_info:
                await ping(session, "warehouse")
    finally:
        await engine.dispose()

    assert exc_info.value.context["database"] == "warehouse"


@pytest.mark.asyncio
async def test_session_scope_rolls_back_on_error(session_factory, db_session):
    with pytest.raises(RuntimeError):
        async with session_scope(session_factory) as session:
            session.add(ProcessConfig(config_name="weatherapi_current_20261019", source_type="api"))
            await session.flush()
            raise RuntimeError("stage failed")

    count = (await db_session.execute(select(func.count(ProcessConfig.config_id)))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_databases_share_engine_for_identical_urls(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'all.db'}"
    databases = Databases(url)
    try:
        assert len(databases.engines) == 1
    finally:
        await databases.dispose()

    split = Databases(url, staging_url=f"sqlite+aiosqlite:///{tmp_path / 'staging.db'}")
    try:
        assert len(split.engines) == 2
    finally:
        await split.dispose()


def test_settings_fall_back_to_control_url():
    config = Settings(DATABASE_URL="sqlite+aiosqlite:///control.db", WAREHOUSE_DATABASE_URL="sqlite+aiosqlite:///dw.db")

    assert config.staging_database_url == "sqlite+aiosqlite:///control.db"
    assert config.warehouse_database_url == "sqlite+aiosqlite:///dw.db"


@pytest.mark.asyncio
async def test_init_database_creates_every_table(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}"

    await init_database(Settings(DATABASE_URL=url))

    engine = create_engine(url)
    try:
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()

    for table in ("config_process", "log_process", "raw_weather_location", "stg_location",
                  "dim_location", "fact_weather_daily", "fact_air_quality_daily"):
        assert table in tables
