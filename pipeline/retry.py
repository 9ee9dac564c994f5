"""
Bounded retry with a fixed delay around one pipeline stage.

No backoff and no jitter: attempt n+1 starts `delay_seconds` after attempt n
failed. NonRetryableError ends the loop at once. An interrupt during the wait
propagates so the process exits non-zero instead of carrying on.
"""

from typing import Awaitable, Callable, Optional
import asyncio
import logging

from core.exceptions import NonRetryableError, RetryExhaustedError
from core.notifications import LogNotifier, Notifier, notify_safely
from pipeline import reports
from schemas.reports import StageResult

logger = logging.getLogger(__name__)


class StageAttempt:
    """Handed to each attempt; the stage records the execution id it opened"""

    def __init__(self, number: int, max_attempts: int):
        self.number = number
        self.max_attempts = max_attempts
        self.execution_id: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return self.number >= self.max_attempts

    def __repr__(self) -> str:
        return f"StageAttempt({self.number}/{self.max_attempts}, execution_id={self.execution_id})"


StageWork = Callable[[StageAttempt], Awaitable[StageResult]]


class RetryOrchestrator:
    """
    Run a stage up to `max_attempts` times.

    Attributes:
        max_attempts: Total attempts, including the first (default: 3)
        delay_seconds: Constant wait between attempts (default: 900)
        notifier: Receives one report per failed attempt and one on exhaustion
        sleep: Awaitable used for the wait (injectable for tests)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 900,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.notifier = notifier or LogNotifier()
        self.sleep = sleep

    async def run(self, stage: str, work: StageWork) -> StageResult:
        for number in range(1, self.max_attempts + 1):
            attempt = StageAttempt(number, self.max_attempts)
            logger.info(f"{stage}: attempt {number}/{self.max_attempts}")

            try:
                result = await work(attempt)
                result.attempts = number
                return result

            except Exception as e:
                fatal = isinstance(e, NonRetryableError)
                retrying = not fatal and not attempt.is_last

                logger.error(
                    f"{stage}: attempt {number}/{self.max_attempts} failed: "
                    f"{type(e).__name__}: {e}",
                    extra={"error_context": getattr(e, "context", {})}
                )
                subject, body = reports.attempt_failure(
                    stage,
                    number,
                    self.max_attempts,
                    e,
                    execution_id=attempt.execution_id,
                    next_delay=self.delay_seconds if retrying else None,
                )
                await notify_safely(self.notifier, subject, body, is_error=True)

                if fatal:
                    logger.error(f"{stage}: non-retryable error, giving up")
                    raise

                if attempt.is_last:
                    subject, body = reports.retries_exhausted(stage, self.max_attempts, e)
                    await notify_safely(self.notifier, subject, body, is_error=True)
                    raise RetryExhaustedError(
                        f"{stage}: all {self.max_attempts} attempts exhausted",
                        context={"stage": stage, "attempts": self.max_attempts},
                        original_exception=e
                    )

            logger.info(f"{stage}: waiting {self.delay_seconds:g}s before the next attempt")
            try:
                await self.sleep(self.delay_seconds)
            except asyncio.CancelledError:
                logger.warning(f"{stage}: interrupted while waiting to retry")
                raise

        # Unreachable: the last attempt either returns or raises
        raise RetryExhaustedError(
            f"{stage}: all {self.max_attempts} attempts exhausted",
            context={"stage": stage, "attempts": self.max_attempts}
        )
