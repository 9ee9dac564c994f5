"""
Execution tracking against the control store.

Every stage runs under an ExecutionLog row. The tracker answers the daily
admission question ("did this process already succeed today?"), resolves the
per-day ProcessConfig row, mints execution ids and records terminal status.

Each call opens and commits its own short session so that a tracked status
survives a rollback of the stage's own work.
"""

from typing import Callable, Optional
from datetime import datetime, timedelta
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.database import session_scope
from core.exceptions import TrackingError
from models.base import ExecutionStatus
from models.execution_log import ExecutionLog
from models.process_config import ProcessConfig
import logging

logger = logging.getLogger(__name__)

MAX_ID_SUFFIX = 100


class ExecutionTracker:
    """
    Create, gate and complete execution records.

    Attributes:
        session_factory: Session factory bound to the control store
        clock: Returns the current local time (injectable for tests)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.session_factory = session_factory
        self.clock = clock

    def _today_bounds(self):
        start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)

    async def has_succeeded_today(self, process_name: str) -> bool:
        """True when `process_name` already has a successful run started today"""
        start, end = self._today_bounds()
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(
                    select(func.count(ExecutionLog.execution_id)).where(
                        ExecutionLog.process_name == process_name,
                        ExecutionLog.status == ExecutionStatus.SUCCESS,
                        ExecutionLog.start_time >= start,
                        ExecutionLog.start_time < end,
                    )
                )
                count = result.scalar_one()
        except SQLAlchemyError as e:
            raise TrackingError(
                "Cannot check today's executions",
                context={"process_name": process_name, "operation": "check"},
                original_exception=e
            )
        return count > 0

    async def get_or_create_config(
        self,
        base_name: str,
        source_type: str,
        source_url: Optional[str] = None,
        output_path: Optional[str] = None
    ) -> ProcessConfig:
        """Resolve `<base_name>_<YYYYMMDD>`, creating it on first use today"""
        config_name = f"{base_name}_{self.clock():%Y%m%d}"
        statement = select(ProcessConfig).where(ProcessConfig.config_name == config_name)

        try:
            async with session_scope(self.session_factory) as session:
                config = (await session.execute(statement)).scalar_one_or_none()
                if config is not None:
                    return config

                config = ProcessConfig(
                    config_name=config_name,
                    source_type=source_type,
                    source_url=source_url,
                    output_path=output_path,
                    is_active=True,
                )
                session.add(config)
                try:
                    await session.commit()
                except IntegrityError:
                    # Created concurrently by another run
                    await session.rollback()
                    config = (await session.execute(statement)).scalar_one()
                else:
                    logger.info(f"Created process config {config_name}")
                return config
        except SQLAlchemyError as e:
            raise TrackingError(
                f"Cannot resolve process config {config_name}",
                context={"config_name": config_name, "operation": "config"},
                original_exception=e
            )

    def mint_execution_id(self, process_name: str, suffix: int = 0) -> str:
        base = f"{process_name}_{self.clock():%Y%m%d_%H%M%S}"
        return f"{base}_{suffix}" if suffix else base

    async def begin(self, process_name: str, config_id: Optional[int] = None) -> ExecutionLog:
        """
        Insert a RUNNING execution record.

        A collision on the second-resolution id is retried with an
        incrementing suffix.
        """
        try:
            for suffix in range(MAX_ID_SUFFIX):
                execution = ExecutionLog(
                    execution_id=self.mint_execution_id(process_name, suffix),
                    config_id=config_id,
                    process_name=process_name,
                    status=ExecutionStatus.RUNNING,
                    start_time=self.clock(),
                    records_inserted=0,
                    records_failed=0,
                )
                async with session_scope(self.session_factory) as session:
                    session.add(execution)
                    try:
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        logger.debug(f"Execution id {execution.execution_id} taken, retrying")
                        continue

                logger.info(f"Started {process_name} execution {execution.execution_id}")
                return execution
        except SQLAlchemyError as e:
            raise TrackingError(
                f"Cannot start {process_name} execution",
                context={"process_name": process_name, "operation": "begin"},
                original_exception=e
            )

        raise TrackingError(
            f"No free execution id for {process_name}",
            context={"process_name": process_name, "operation": "begin"}
        )

    async def complete(
        self,
        execution_id: str,
        status: ExecutionStatus,
        records_inserted: int = 0,
        records_failed: int = 0,
        message: Optional[str] = None
    ) -> None:
        """Record the terminal state; calling again overwrites the previous one"""
        try:
            async with session_scope(self.session_factory) as session:
                execution = await session.get(ExecutionLog, execution_id)
                if execution is None:
                    raise TrackingError(
                        f"Unknown execution {execution_id}",
                        context={"execution_id": execution_id, "operation": "complete"}
                    )
                execution.status = status
                execution.end_time = self.clock()
                execution.records_inserted = records_inserted
                execution.records_failed = records_failed
                execution.error_message = message
                await session.commit()
        except SQLAlchemyError as e:
            raise TrackingError(
                f"Cannot complete execution {execution_id}",
                context={"execution_id": execution_id, "operation": "complete"},
                original_exception=e
            )

        logger.info(
            f"Execution {execution_id} finished: {status.value} "
            f"(inserted={records_inserted}, failed={records_failed})"
        )

    async def mark_failed(self, execution_id: str, message: str, records_failed: int = 0) -> None:
        await self.complete(
            execution_id,
            ExecutionStatus.FAILED,
            records_failed=records_failed,
            message=message,
        )

    async def get(self, execution_id: str) -> Optional[ExecutionLog]:
        async with session_scope(self.session_factory) as session:
            return await session.get(ExecutionLog, execution_id)
