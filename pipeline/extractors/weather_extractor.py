"""
Weather API extraction with per-location failure policies.

This module provides:
- WeatherAPIClient: one current-conditions request per location, with HTTP
  status codes classified into typed extraction errors
- WeatherExtractor: sequential, throttled fetch over all locations that
  writes the daily extract file only when the failure policy allows it
"""

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Any

import httpx
import pandas as pd
from pydantic import ValidationError as PayloadValidationError

from core.exceptions import (
    APIExtractionError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from schemas.reports import EntityFailure, ExtractionOutcome, FailurePolicy
from schemas.weather import EXTRACT_COLUMNS, Location, WeatherReading
import logging

logger = logging.getLogger(__name__)

FetchFunction = Callable[[Location], Awaitable[WeatherReading]]

EXTRACT_FILE_ENCODING = "utf-8-sig"


def daily_file_path(output_dir: str, prefix: str, day: datetime) -> Path:
    """Deterministic per-day artifact name: re-runs overwrite, never accumulate"""
    return Path(output_dir) / f"{prefix}{day:%Y%m%d}.csv"


class WeatherAPIClient:
    """
    Fetch current conditions (with air quality) for one location.

    Use as an async context manager; the underlying httpx client is closed on
    exit.

    Attributes:
        base_url: Current-conditions endpoint
        api_key: API key sent as the `key` query parameter
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "WeatherAPIClient":
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _check_status(self, response: httpx.Response, location: Location) -> None:
        """Map error responses onto the extraction error hierarchy"""
        status = response.status_code
        context = {
            "location": location.name,
            "status_code": status,
            "response_body": response.text[:500],
        }

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {location.name}", context=context
            )
        if status == 404:
            raise ResourceNotFoundError(
                f"Location not found upstream: {location.api_name}", context=context
            )
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded while fetching {location.name}",
                context=context,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if status >= 500:
            raise NetworkError(
                f"Server error {status} for {location.name}", context=context
            )
        if status != 200:
            raise APIExtractionError(
                f"Unexpected status {status} for {location.name}", context=context
            )

    async def fetch(self, location: Location) -> WeatherReading:
        """
        Fetch and validate one location.

        Raises:
            NetworkError: Timeout, connection failure or HTTP 5xx
            RateLimitError: HTTP 429
            AuthenticationError: HTTP 401/403
            ResourceNotFoundError: HTTP 404
            APIExtractionError: Any other status or an unusable payload
        """
        if self._client is None:
            raise RuntimeError("WeatherAPIClient must be used as an async context manager")

        params = {"key": self.api_key, "q": location.api_name, "aqi": "yes"}

        try:
            response = await self._client.get(self.base_url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {location.name}",
                context={"location": location.name, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error for {location.name}",
                context={"location": location.name},
                original_exception=e
            )

        self._check_status(response, location)

        try:
            payload = response.json()
        except ValueError as e:
            raise APIExtractionError(
                "Failed to parse JSON response",
                context={"location": location.name, "response_body": response.text[:500]},
                original_exception=e
            )

        if not isinstance(payload, dict):
            raise APIExtractionError(
                "Unexpected response payload",
                context={"location": location.name, "payload_type": type(payload).__name__}
            )

        try:
            return WeatherReading.from_api_payload(payload)
        except PayloadValidationError as e:
            raise APIExtractionError(
                f"Incomplete weather payload for {location.name}",
                context={"location": location.name, "errors": e.errors()},
                original_exception=e
            )


class WeatherExtractor:
    """
    Fetch every location in turn and decide the run's outcome.

    Calls are sequential with `call_delay` seconds between them. Under the
    strict policy any failure means no file is written; under best-effort the
    file holds the successful locations as long as there is at least one.
    """

    def __init__(
        self,
        fetch: FetchFunction,
        locations: List[Location],
        output_dir: str,
        file_prefix: str,
        policy: FailurePolicy = FailurePolicy.STRICT,
        call_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.fetch = fetch
        self.locations = locations
        self.output_dir = output_dir
        self.file_prefix = file_prefix
        self.policy = FailurePolicy(policy)
        self.call_delay = call_delay
        self.sleep = sleep
        self.clock = clock

    @property
    def file_path(self) -> Path:
        return daily_file_path(self.output_dir, self.file_prefix, self.clock())

    def discard_artifact(self, path: Optional[Path] = None) -> bool:
        """Remove today's file if present; returns True when a file was removed"""
        path = path or self.file_path
        if path.exists():
            path.unlink()
            logger.info(f"Removed extract file {path}")
            return True
        return False

    async def extract(self, execution_id: str) -> ExtractionOutcome:
        path = self.file_path
        if self.discard_artifact(path):
            logger.info("Stale extract file from an earlier run removed")

        rows: List[Dict[str, Any]] = []
        failures: List[EntityFailure] = []
        extract_time = self.clock()

        logger.info(
            f"Extracting {len(self.locations)} locations "
            f"(policy={self.policy.value}, execution={execution_id})"
        )

        for index, location in enumerate(self.locations):
            if index > 0 and self.call_delay:
                await self.sleep(self.call_delay)

            try:
                reading = await self.fetch(location)
                rows.append(reading.to_extract_row(location, execution_id, extract_time))
                logger.info(f"  {location.label}: ok ({reading.temp_c} C, {reading.condition_text})")

            except Exception as e:
                reason = getattr(e, "message", None) or str(e)
                failures.append(EntityFailure(
                    location=location.label,
                    error_type=type(e).__name__,
                    reason=reason,
                ))
                logger.warning(
                    f"  {location.label}: FAILED ({type(e).__name__}: {reason})",
                    extra={"error_context": getattr(e, "context", {})}
                )

        outcome = ExtractionOutcome(
            policy=self.policy,
            total=len(self.locations),
            success_count=len(rows),
            failures=failures,
            execution_id=execution_id,
        )

        if outcome.succeeded:
            self._write(path, rows)
            outcome.file_path = str(path)
        else:
            logger.warning(
                f"Extract outcome {outcome.kind.value} under {self.policy.value} policy; "
                f"no file written"
            )

        logger.info(
            f"Extraction finished: {outcome.success_count} succeeded, "
            f"{outcome.failure_count} failed"
        )
        return outcome

    def _write(self, path: Path, rows: List[Dict[str, Any]]) -> None:
        os.makedirs(path.parent, exist_ok=True)
        frame = pd.DataFrame(rows, columns=EXTRACT_COLUMNS)
        frame.to_csv(path, index=False, encoding=EXTRACT_FILE_ENCODING)
        logger.info(f"Wrote {len(frame)} rows to {path}")
