"""
Notification collaborator.

Stages hand finished reports (subject + body) to a Notifier. Delivery is
pluggable; the default implementation writes the report to the log.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple
import logging

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Receives success and failure reports from pipeline stages"""

    @abstractmethod
    async def send(self, subject: str, body: str, is_error: bool = False) -> None:
        pass


class LogNotifier(Notifier):
    """Write reports to the application log"""

    def __init__(self, name: str = "weather_etl.notifications"):
        self._logger = logging.getLogger(name)

    async def send(self, subject: str, body: str, is_error: bool = False) -> None:
        level = logging.ERROR if is_error else logging.INFO
        self._logger.log(level, f"{subject}\n{body}")


class MemoryNotifier(Notifier):
    """Keep reports in memory; used when a caller wants to inspect them"""

    def __init__(self):
        self.messages: List[Tuple[str, str, bool]] = []

    async def send(self, subject: str, body: str, is_error: bool = False) -> None:
        self.messages.append((subject, body, is_error))

    @property
    def subjects(self) -> List[str]:
        return [subject for subject, _, _ in self.messages]


async def notify_safely(notifier: Notifier, subject: str, body: str, is_error: bool = False) -> None:
    """A failing notifier must never change the outcome of a stage"""
    try:
        await notifier.send(subject, body, is_error=is_error)
    except Exception as e:
        logger.error(f"Failed to send notification '{subject}': {e}")
