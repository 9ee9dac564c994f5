import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import Settings, settings as default_settings
from core.notifications import Notifier
from pipeline.runner import STAGES, run_stages
from schemas.reports import FailurePolicy

logger = logging.getLogger(__name__)


class ETLScheduler:
    """Run the four stages once a day at SCHEDULE_HOUR:SCHEDULE_MINUTE"""

    JOB_ID = "weather_etl_daily"

    def __init__(
        self,
        config: Settings = default_settings,
        notifier: Optional[Notifier] = None,
        policy: Optional[FailurePolicy] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None
    ):
        self.config = config
        self.notifier = notifier
        self.policy = policy
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.scheduler = AsyncIOScheduler()

    @property
    def trigger(self) -> CronTrigger:
        return CronTrigger(hour=self.config.SCHEDULE_HOUR, minute=self.config.SCHEDULE_MINUTE)

    async def run_etl_job(self):
        """Job to run the daily pipeline"""
        logger.info("Scheduler: Starting daily weather ETL")
        try:
            results = await run_stages(
                STAGES,
                config=self.config,
                notifier=self.notifier,
                policy=self.policy,
                max_attempts=self.max_attempts,
                retry_delay=self.retry_delay,
            )
            logger.info(
                "Scheduler: daily weather ETL finished: "
                + ", ".join(f"{r.stage}={r.status.value}" for r in results)
            )
        except Exception as e:
            # Already reported by the retry orchestrator; keep the scheduler alive
            logger.error(f"Scheduler: daily weather ETL failed - {e}")

    def start(self):
        """Start the scheduler; must be called from a running event loop"""
        self.scheduler.add_job(
            self.run_etl_job,
            trigger=self.trigger,
            id=self.JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            f"ETL Scheduler started (daily at "
            f"{self.config.SCHEDULE_HOUR:02d}:{self.config.SCHEDULE_MINUTE:02d})"
        )

    def stop(self):
        self.scheduler.shutdown()
        logger.info("ETL Scheduler stopped")
