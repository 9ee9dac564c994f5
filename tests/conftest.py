"""
Pytest configuration and fixtures
"""

import asyncio
from pathlib import Path
from typing import AsyncGenerator, Dict, Any, Iterable, List

import pandas as pd
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

import models  # noqa: F401  (registers every table on Base.metadata)
from core.config import Settings
from core.database import create_session_factory
from core.exceptions import NetworkError
from models.base import Base
from schemas.weather import EXTRACT_COLUMNS, Location, WeatherReading


def build_weather_payload(
    name: str = "Hanoi",
    temp_c: float = 30.5,
    last_updated: str = "2026-10-19 06:00",
    condition_code: int = 1003,
    condition_text: str = "Partly cloudy",
    country: str = "Vietnam",
) -> Dict[str, Any]:
    """A current.json response body with air quality"""
    return {
        "location": {
            "name": name,
            "region": "",
            "country": country,
            "lat": 21.03,
            "lon": 105.85,
            "tz_id": "Asia/Bangkok",
            "localtime_epoch": 1792371600,
            "localtime": "2026-10-19 6:05",
        },
        "current": {
            "last_updated_epoch": 1792371600,
            "last_updated": last_updated,
            "temp_c": temp_c,
            "temp_f": round(temp_c * 9 / 5 + 32, 1),
            "is_day": 1,
            "condition": {
                "text": condition_text,
                "icon": "//cdn.weatherapi.com/weather/64x64/day/116.png",
                "code": condition_code,
            },
            "wind_mph": 6.9,
            "wind_kph": 11.2,
            "wind_degree": 120,
            "wind_dir": "ESE",
            "pressure_mb": 1011.0,
            "pressure_in": 29.85,
            "precip_mm": 0.0,
            "precip_in": 0.0,
            "humidity": 70,
            "cloud": 50,
            "feelslike_c": 34.2,
            "feelslike_f": 93.6,
            "vis_km": 10.0,
            "vis_miles": 6.0,
            "uv": 5.0,
            "gust_mph": 8.0,
            "gust_kph": 12.9,
            "air_quality": {
                "co": 700.9,
                "no2": 30.2,
                "o3": 50.1,
                "so2": 10.3,
                "pm2_5": 40.5,
                "pm10": 60.2,
                "us-epa-index": 2,
                "gb-defra-index": 4,
            },
        },
    }


def make_fetch(failing: Iterable[str] = (), calls: List[str] = None):
    """Fetch function that fails with a 500-style NetworkError for `failing` names"""
    failing = set(failing)

    async def fetch(location: Location) -> WeatherReading:
        if calls is not None:
            calls.append(location.name)
        if location.name in failing:
            raise NetworkError(
                f"Server error 500 for {location.name}",
                context={"location": location.name, "status_code": 500}
            )
        return WeatherReading.from_api_payload(build_weather_payload(name=location.api_name))

    return fetch


def write_extract_file(path: Path, rows: List[Dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=EXTRACT_COLUMNS).to_csv(path, index=False, encoding="utf-8-sig")
    return path


def extract_rows(names: Iterable[str], execution_id: str = "EXT_20261019_060000") -> List[Dict[str, Any]]:
    rows = []
    for name in names:
        location = Location(name=name, api_name=name, code=name[:2].upper(), region="North")
        reading = WeatherReading.from_api_payload(build_weather_payload(name=name))
        rows.append(reading.to_extract_row(location, execution_id))
    return rows


async def _create_schema(url: str) -> None:
    engine = create_async_engine(url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed SQLite so separate sessions use separate connections"""
    return f"sqlite+aiosqlite:///{tmp_path / 'weather_etl.db'}"


@pytest.fixture
def sync_schema(db_url) -> str:
    """Create all tables from a synchronous test (e.g. CLI tests)"""
    asyncio.run(_create_schema(db_url))
    return db_url


@pytest_asyncio.fixture(scope="function")
async def test_engine(db_url):
    """Create test database engine"""
    engine = create_async_engine(
        db_url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings(db_url, tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=db_url,
        WEATHER_API_KEY="test-key",
        EXTRACT_OUTPUT_DIR=str(tmp_path / "data"),
        ARCHIVE_DIR=str(tmp_path / "data" / "archive"),
        EXTRACT_CALL_DELAY=0,
        EXTRACT_FAILURE_POLICY="strict",
        MAX_RETRIES=1,
        RETRY_DELAY_SECONDS=0,
    )


@pytest.fixture
def weather_payload():
    """Mock API response data"""
    return build_weather_payload()


@pytest.fixture
def payload_factory():
    return build_weather_payload


@pytest.fixture
def fetch_factory():
    return make_fetch


@pytest.fixture
def extract_rows_factory():
    return extract_rows


@pytest.fixture
def write_extract():
    return write_extract_file
