"""
Unit tests for the weather API client and extractor
"""

import pytest
import httpx
import pandas as pd
from datetime import datetime
from unittest.mock import AsyncMock

from core.exceptions import (
    APIExtractionError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from pipeline.extractors.weather_extractor import (
    WeatherAPIClient,
    WeatherExtractor,
    daily_file_path,
)
from schemas.reports import FailurePolicy, OutcomeKind
from schemas.weather import EXTRACT_COLUMNS, Location

BASE_URL = "https://api.weatherapi.com/v1/current.json"
NOW = datetime(2026, 10, 19, 6, 0, 0)

LOCATIONS = [
    Location(name="Ha Noi", api_name="Hanoi", code="HN", region="North"),
    Location(name="Da Nang", api_name="Da Nang", code="DN", region="Central"),
    Location(name="Ho Chi Minh", api_name="Ho Chi Minh City", code="HCM", region="South"),
]


def client_for(handler) -> WeatherAPIClient:
    return WeatherAPIClient(BASE_URL, "test-key", timeout=5.0, transport=httpx.MockTransport(handler))


class TestWeatherAPIClient:
    """Test request building and status classification"""

    @pytest.mark.asyncio
    async def test_fetch_success(self, weather_payload):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=weather_payload)

        async with client_for(handler) as client:
            reading = await client.fetch(LOCATIONS[0])

        assert reading.temp_c == 30.5
        assert reading.condition_code == 1003
        assert reading.aqi_us == 2
        assert reading.aqi_gb == 4
        params = dict(seen[0].url.params)
        assert params == {"key": "test-key", "q": "Hanoi", "aqi": "yes"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (404, ResourceNotFoundError),
            (429, RateLimitError),
            (500, NetworkError),
            (503, NetworkError),
            (400, APIExtractionError),
        ],
    )
    async def test_error_status_classification(self, status, error):
        def handler(request):
            return httpx.Response(status, json={"error": {"code": 1006, "message": "nope"}})

        async with client_for(handler) as client:
            with pytest.raises(error) as exc_info:
                await client.fetch(LOCATIONS[1])

        assert exc_info.value.context["status_code"] == status
        assert exc_info.value.context["location"] == "Da Nang"

    @pytest.mark.asyncio
    async def test_rate_limit_keeps_retry_after(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "30"}, text="slow down")

        async with client_for(handler) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.fetch(LOCATIONS[0])

        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with client_for(handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.fetch(LOCATIONS[0])

        assert exc_info.value.context["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_connection_error_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(NetworkError):
                await client.fetch(LOCATIONS[0])

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with client_for(handler) as client:
            with pytest.raises(APIExtractionError):
                await client.fetch(LOCATIONS[0])

    @pytest.mark.asyncio
    async def test_incomplete_payload(self, weather_payload):
        del weather_payload["current"]["temp_c"]

        def handler(request):
            return httpx.Response(200, json=weather_payload)

        async with client_for(handler) as client:
            with pytest.raises(APIExtractionError) as exc_info:
                await client.fetch(LOCATIONS[0])

        assert "Incomplete weather payload" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_fetch_outside_context_manager(self):
        client = WeatherAPIClient(BASE_URL, "test-key")
        with pytest.raises(RuntimeError):
            await client.fetch(LOCATIONS[0])


class TestWeatherExtractor:
    """Test failure policies and the output file"""

    def extractor(self, tmp_path, fetch, policy, sleep=None):
        return WeatherExtractor(
            fetch,
            LOCATIONS,
            output_dir=str(tmp_path),
            file_prefix="weatherapi_",
            policy=policy,
            call_delay=0.1,
            sleep=sleep or AsyncMock(),
            clock=lambda: NOW,
        )

    def test_daily_file_path(self, tmp_path):
        path = daily_file_path(str(tmp_path), "weatherapi_", NOW)
        assert path == tmp_path / "weatherapi_20261019.csv"

    @pytest.mark.asyncio
    async def test_all_succeed_writes_file(self, tmp_path, fetch_factory):
        extractor = self.extractor(tmp_path, fetch_factory(), FailurePolicy.STRICT)

        outcome = await extractor.extract("EXT_20261019_060000")

        assert outcome.kind == OutcomeKind.SUCCESS
        assert outcome.succeeded
        assert outcome.success_count == 3
        assert outcome.file_path == str(tmp_path / "weatherapi_20261019.csv")

        frame = pd.read_csv(outcome.file_path, encoding="utf-8-sig", dtype=str)
        assert list(frame.columns) == EXTRACT_COLUMNS
        assert len(frame) == 3
        assert list(frame["location_name"]) == ["Ha Noi", "Da Nang", "Ho Chi Minh"]
        assert set(frame["execution_id"]) == {"EXT_20261019_060000"}
        assert set(frame["extract_time"]) == {"2026-10-19 06:00:00"}

    @pytest.mark.asyncio
    async def test_file_starts_with_byte_order_mark(self, tmp_path, fetch_factory):
        extractor = self.extractor(tmp_path, fetch_factory(), FailurePolicy.STRICT)

        outcome = await extractor.extract("EXT_20261019_060000")

        with open(outcome.file_path, "rb") as f:
            assert f.read(3) == b"\xef\xbb\xbf"

    @pytest.mark.asyncio
    async def test_strict_one_failure_keeps_no_file(self, tmp_path, fetch_factory):
        extractor = self.extractor(tmp_path, fetch_factory(failing={"Da Nang"}), FailurePolicy.STRICT)

        outcome = await extractor.extract("EXT_20261019_060000")

        assert outcome.kind == OutcomeKind.PARTIAL_FAILURE
        assert not outcome.succeeded
        assert outcome.failure_count == 1
        assert outcome.failures[0].location == "Da Nang (DN)"
        assert outcome.failures[0].error_type == "NetworkError"
        assert outcome.file_path is None
        assert not extractor.file_path.exists()

    @pytest.mark.asyncio
    async def test_best_effort_partial_failure_writes_successes(self, tmp_path, fetch_factory):
        extractor = self.extractor(tmp_path, fetch_factory(failing={"Da Nang"}), FailurePolicy.BEST_EFFORT)

        outcome = await extractor.extract("EXT_20261019_060000")

        assert outcome.succeeded
        assert outcome.success_count == 2
        assert outcome.failure_count == 1
        frame = pd.read_csv(outcome.file_path, encoding="utf-8-sig", dtype=str)
        assert len(frame) == 2
        assert "Da Nang" not in set(frame["location_name"])

    @pytest.mark.asyncio
    async def test_best_effort_all_failed(self, tmp_path, fetch_factory):
        names = {location.name for location in LOCATIONS}
        extractor = self.extractor(tmp_path, fetch_factory(failing=names), FailurePolicy.BEST_EFFORT)

        outcome = await extractor.extract("EXT_20261019_060000")

        assert outcome.kind == OutcomeKind.ALL_FAILED
        assert not outcome.succeeded
        assert not extractor.file_path.exists()

    @pytest.mark.asyncio
    async def test_stale_file_removed_before_run(self, tmp_path, fetch_factory):
        extractor = self.extractor(tmp_path, fetch_factory(failing={"Ha Noi"}), FailurePolicy.STRICT)
        extractor.file_path.write_text("execution_id\nold\n")

        await extractor.extract("EXT_20261019_070000")

        assert not extractor.file_path.exists()

    @pytest.mark.asyncio
    async def test_calls_are_sequential_and_throttled(self, tmp_path, fetch_factory):
        calls = []
        sleep = AsyncMock()
        extractor = self.extractor(tmp_path, fetch_factory(calls=calls), FailurePolicy.STRICT, sleep=sleep)

        await extractor.extract("EXT_20261019_060000")

        assert calls == ["Ha Noi", "Da Nang", "Ho Chi Minh"]
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.1)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_a_location_failure(self, tmp_path, fetch_factory):
        good = fetch_factory()

        async def fetch(location):
            if location.name == "Ho Chi Minh":
                raise ValueError("bad data")
            return await good(location)

        extractor = self.extractor(tmp_path, fetch, FailurePolicy.BEST_EFFORT)

        outcome = await extractor.extract("EXT_20261019_060000")

        assert outcome.success_count == 2
        assert outcome.failures[0].error_type == "ValueError"
        assert outcome.failures[0].reason == "bad data"
