# ============================================================================
# File: pipeline/runner.py
# Description: Daily weather ETL stages with execution tracking
# ============================================================================
"""
Pipeline Runner - the four daily stages and their orchestration.

Each stage:
- Skips cleanly when its process already succeeded today
- Runs under its own ExecutionLog row (created at start, completed once)
- Owns the sessions it opens; they are closed before failure is recorded
- Reports success or failure through the notifier

run_stages() wraps each stage in the RetryOrchestrator with fresh
database engines per attempt.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence
import asyncio
import logging
import os
import shutil

from core.config import Settings, settings as default_settings
from core.database import Databases, ping, session_scope
from core.exceptions import ConfigurationError, ExtractionFailedError
from core.notifications import LogNotifier, Notifier, notify_safely
from models.base import ExecutionStatus, ProcessName
from pipeline import reports
from pipeline.extractors.weather_extractor import (
    FetchFunction,
    WeatherAPIClient,
    WeatherExtractor,
    daily_file_path,
)
from pipeline.loaders.staging_loader import StagingLoader
from pipeline.loaders.warehouse_loader import WarehouseLoader
from pipeline.retry import RetryOrchestrator, StageAttempt
from pipeline.tracking import ExecutionTracker
from pipeline.transformers.staging_transformer import TransformEngine
from schemas.reports import ExtractionOutcome, FailurePolicy, StageResult, StageStatus
from schemas.weather import Location

logger = logging.getLogger(__name__)

STAGES = ("extract", "load-staging", "transform", "load-warehouse")

STAGE_PROCESSES = {
    "extract": ProcessName.EXTRACT,
    "load-staging": ProcessName.LOAD_STAGING,
    "transform": ProcessName.TRANSFORM,
    "load-warehouse": ProcessName.LOAD_WAREHOUSE,
}


class PipelineRunner:
    """
    Runs one stage at a time against the given databases.

    Attributes:
        databases: Session factories for the control, staging and warehouse stores
        notifier: Receives stage reports
        config: Settings to read paths, locations and batch sizes from
        policy: Extract failure policy (defaults to EXTRACT_FAILURE_POLICY)
        fetch: Per-location fetch function; defaults to the weather API client
        clock: Current local time (injectable for tests)
    """

    def __init__(
        self,
        databases: Databases,
        notifier: Optional[Notifier] = None,
        config: Settings = default_settings,
        policy: Optional[FailurePolicy] = None,
        fetch: Optional[FetchFunction] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.databases = databases
        self.notifier = notifier or LogNotifier()
        self.config = config
        self.policy = FailurePolicy(policy or config.EXTRACT_FAILURE_POLICY)
        self.fetch = fetch
        self.clock = clock
        self.sleep = sleep
        self.tracker = ExecutionTracker(databases.control, clock=clock)

    async def run_stage(self, stage: str, attempt: Optional[StageAttempt] = None) -> StageResult:
        handlers = {
            "extract": self.extract,
            "load-staging": self.load_staging,
            "transform": self.transform,
            "load-warehouse": self.load_warehouse,
        }
        if stage not in handlers:
            raise ConfigurationError(
                f"Unknown stage: {stage}",
                context={"setting": "stage", "choices": list(handlers)}
            )
        return await handlers[stage](attempt or StageAttempt(1, 1))

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------

    @property
    def extract_file(self) -> Path:
        return daily_file_path(
            self.config.EXTRACT_OUTPUT_DIR,
            self.config.EXTRACT_FILE_PREFIX,
            self.clock(),
        )

    def _locations(self) -> List[Location]:
        locations = [Location(**entry.dict()) for entry in self.config.WEATHER_LOCATIONS]
        if not locations:
            raise ConfigurationError(
                "No locations configured",
                context={"setting": "WEATHER_LOCATIONS"}
            )
        return locations

    @asynccontextmanager
    async def _fetcher(self) -> AsyncIterator[FetchFunction]:
        if self.fetch is not None:
            yield self.fetch
            return
        async with WeatherAPIClient(
            self.config.WEATHER_API_BASE_URL,
            self.config.WEATHER_API_KEY,
            timeout=self.config.WEATHER_API_TIMEOUT,
        ) as client:
            yield client.fetch

    async def _already_done(self, stage: str) -> Optional[StageResult]:
        process = STAGE_PROCESSES[stage].value
        if not await self.tracker.has_succeeded_today(process):
            return None

        logger.info(f"{stage}: {process} already succeeded today, skipping")
        subject, body = reports.already_done(stage, process)
        await notify_safely(self.notifier, subject, body)
        return StageResult(
            stage=stage,
            status=StageStatus.SKIPPED,
            message=f"{process} already succeeded today",
        )

    async def _begin(self, stage: str, attempt: StageAttempt) -> str:
        config = await self.tracker.get_or_create_config(
            self.config.SOURCE_CONFIG_NAME,
            self.config.SOURCE_TYPE,
            source_url=self.config.WEATHER_API_BASE_URL,
            output_path=str(self.extract_file),
        )
        execution = await self.tracker.begin(STAGE_PROCESSES[stage].value, config.config_id)
        attempt.execution_id = execution.execution_id
        return execution.execution_id

    async def _fail(self, execution_id: str, error: Exception, records_failed: int = 0) -> None:
        """Record the failure; a tracker error here must not mask `error`"""
        message = getattr(error, "message", None) or str(error)
        try:
            await self.tracker.mark_failed(execution_id, message, records_failed=records_failed)
        except Exception as e:
            logger.error(f"Could not mark {execution_id} as failed: {e}")

    # --------------------------------------------------
    # STAGE 1: EXTRACT
    # --------------------------------------------------

    async def extract(self, attempt: StageAttempt) -> StageResult:
        skipped = await self._already_done("extract")
        if skipped:
            return skipped

        locations = self._locations()
        if self.fetch is None and not self.config.WEATHER_API_KEY:
            raise ConfigurationError(
                "WEATHER_API_KEY is not set",
                context={"setting": "WEATHER_API_KEY"}
            )

        execution_id = await self._begin("extract", attempt)
        outcome: Optional[ExtractionOutcome] = None

        try:
            async with self._fetcher() as fetch:
                extractor = WeatherExtractor(
                    fetch,
                    locations,
                    output_dir=self.config.EXTRACT_OUTPUT_DIR,
                    file_prefix=self.config.EXTRACT_FILE_PREFIX,
                    policy=self.policy,
                    call_delay=self.config.EXTRACT_CALL_DELAY,
                    sleep=self.sleep,
                    clock=self.clock,
                )
                outcome = await extractor.extract(execution_id)

            if not outcome.succeeded:
                extractor.discard_artifact()
                subject, body = reports.extract_failure(outcome)
                await notify_safely(self.notifier, subject, body, is_error=True)
                raise ExtractionFailedError(
                    reports.extraction_failure_message(outcome),
                    context={
                        "execution_id": execution_id,
                        "failed": outcome.failure_count,
                        "total": outcome.total,
                    }
                )

            message = None
            if outcome.failures:
                message = (
                    f"{outcome.failure_count}/{outcome.total} locations failed: "
                    + ", ".join(f.location for f in outcome.failures)
                )
            await self.tracker.complete(
                execution_id,
                ExecutionStatus.SUCCESS,
                records_inserted=outcome.success_count,
                records_failed=outcome.failure_count,
                message=message,
            )

        except Exception as e:
            await self._fail(execution_id, e, records_failed=outcome.failure_count if outcome else 0)
            raise

        subject, body = reports.extract_success(outcome)
        await notify_safely(self.notifier, subject, body)
        return StageResult(
            stage="extract",
            status=StageStatus.SUCCESS,
            execution_id=execution_id,
            records_inserted=outcome.success_count,
            records_failed=outcome.failure_count,
            message=outcome.file_path,
        )

    # --------------------------------------------------
    # STAGE 2: LOAD EXTRACT FILE INTO RAW TABLES
    # --------------------------------------------------

    async def load_staging(self, attempt: StageAttempt) -> StageResult:
        skipped = await self._already_done("load-staging")
        if skipped:
            return skipped

        file_path = self.extract_file
        execution_id = await self._begin("load-staging", attempt)

        try:
            async with session_scope(self.databases.staging) as session:
                await ping(session, "staging")
                loader = StagingLoader(
                    session,
                    source_system=self.config.SOURCE_SYSTEM,
                    default_country=self.config.DEFAULT_COUNTRY,
                    batch_size=self.config.STAGING_BATCH_SIZE,
                )
                report = await loader.load(file_path, execution_id)

            await self.tracker.complete(
                execution_id,
                ExecutionStatus.SUCCESS,
                records_inserted=report.rows_loaded,
                records_failed=report.rows_skipped,
            )

        except Exception as e:
            await self._fail(execution_id, e)
            raise

        self._archive(file_path)

        subject, body = reports.staging_load_success(execution_id, report)
        await notify_safely(self.notifier, subject, body)
        return StageResult(
            stage="load-staging",
            status=StageStatus.SUCCESS,
            execution_id=execution_id,
            records_inserted=report.rows_loaded,
            records_failed=report.rows_skipped,
        )

    def _archive(self, file_path: Path) -> Optional[Path]:
        """Move a loaded extract file out of the way; failure is only logged"""
        target = Path(self.config.ARCHIVE_DIR) / file_path.name
        try:
            os.makedirs(target.parent, exist_ok=True)
            shutil.move(str(file_path), str(target))
        except OSError as e:
            logger.warning(f"Could not archive {file_path}: {e}")
            return None
        logger.info(f"Archived {file_path} to {target}")
        return target

    # --------------------------------------------------
    # STAGE 3: TRANSFORM RAW INTO STAGING
    # --------------------------------------------------

    async def transform(self, attempt: StageAttempt) -> StageResult:
        skipped = await self._already_done("transform")
        if skipped:
            return skipped

        execution_id = await self._begin("transform", attempt)

        try:
            async with session_scope(self.databases.staging) as session:
                await ping(session, "staging")
                report = await TransformEngine(session).run()

            await self.tracker.complete(
                execution_id,
                ExecutionStatus.SUCCESS,
                records_inserted=report.total_written,
                records_failed=report.total_rejected,
            )

        except Exception as e:
            await self._fail(execution_id, e)
            raise

        subject, body = reports.transform_success(execution_id, report)
        await notify_safely(self.notifier, subject, body)
        return StageResult(
            stage="transform",
            status=StageStatus.SUCCESS,
            execution_id=execution_id,
            records_inserted=report.total_written,
            records_failed=report.total_rejected,
        )

    # --------------------------------------------------
    # STAGE 4: LOAD STAGING INTO WAREHOUSE
    # --------------------------------------------------

    async def load_warehouse(self, attempt: StageAttempt) -> StageResult:
        skipped = await self._already_done("load-warehouse")
        if skipped:
            return skipped

        execution_id = await self._begin("load-warehouse", attempt)

        try:
            async with session_scope(self.databases.staging) as staging, \
                    session_scope(self.databases.warehouse) as warehouse:
                await ping(staging, "staging")
                await ping(warehouse, "warehouse")
                loader = WarehouseLoader(
                    staging,
                    warehouse,
                    load_execution_id=execution_id,
                    partition_date=self.clock().date(),
                    batch_size=self.config.WAREHOUSE_BATCH_SIZE,
                )
                report = await loader.run()
                await loader.mark_staging_loaded()

            await self.tracker.complete(
                execution_id,
                ExecutionStatus.SUCCESS,
                records_inserted=report.total_affected,
                records_failed=report.total_skipped,
            )

        except Exception as e:
            await self._fail(execution_id, e)
            raise

        subject, body = reports.warehouse_load_success(execution_id, report, attempt.number)
        await notify_safely(self.notifier, subject, body)
        return StageResult(
            stage="load-warehouse",
            status=StageStatus.SUCCESS,
            execution_id=execution_id,
            records_inserted=report.total_affected,
            records_failed=report.total_skipped,
        )


async def run_stages(
    stages: Sequence[str],
    config: Settings = default_settings,
    notifier: Optional[Notifier] = None,
    policy: Optional[FailurePolicy] = None,
    max_attempts: Optional[int] = None,
    retry_delay: Optional[float] = None,
    fetch: Optional[FetchFunction] = None,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> List[StageResult]:
    """
    Run `stages` in order, each under the retry orchestrator.

    Every attempt gets its own engines, disposed when the attempt ends.

    Raises:
        RetryExhaustedError: A stage failed on every attempt
        NonRetryableError: A stage hit a fatal error
    """
    notifier = notifier or LogNotifier()
    orchestrator = RetryOrchestrator(
        max_attempts=max_attempts or config.MAX_RETRIES,
        delay_seconds=config.RETRY_DELAY_SECONDS if retry_delay is None else retry_delay,
        notifier=notifier,
        sleep=sleep,
    )

    results = []
    for stage in stages:
        async def work(attempt: StageAttempt, stage: str = stage) -> StageResult:
            databases = Databases.from_settings(config)
            try:
                runner = PipelineRunner(
                    databases,
                    notifier=notifier,
                    config=config,
                    policy=policy,
                    fetch=fetch,
                    clock=clock,
                    sleep=sleep,
                )
                return await runner.run_stage(stage, attempt)
            finally:
                await databases.dispose()

        result = await orchestrator.run(stage, work)
        logger.info(
            f"{stage}: {result.status.value} after {result.attempts} attempt(s) "
            f"(execution={result.execution_id})"
        )
        results.append(result)

    return results
