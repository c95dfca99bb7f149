"""Base worker class for cron-scheduled background tasks."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from croniter import CroniterBadCronError, croniter

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    The worker sleeps until the next fire time of its cron expression
    (evaluated in UTC), runs ``process`` once, and repeats. An exception
    escaping ``process`` is logged and the schedule continues.
    """

    def __init__(self, name: str, cron_expression: str, run_on_start: bool = False):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            cron_expression: Five-field cron expression, evaluated in UTC
            run_on_start: Fire once immediately when the worker starts

        Raises:
            ValueError: If the cron expression cannot be parsed
        """
        try:
            croniter(cron_expression, datetime.now(timezone.utc))
        except (CroniterBadCronError, ValueError) as e:
            raise ValueError(f"Invalid cron expression for {name}: {cron_expression!r}") from e

        self.name = name
        self.cron_expression = cron_expression
        self.run_on_start = run_on_start
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""

    def next_fire(self, now: datetime) -> datetime:
        """First fire time strictly after ``now``."""
        return croniter(self.cron_expression, now.astimezone(timezone.utc)).get_next(datetime)

    def following_fire(self, previous: datetime, now: datetime) -> datetime:
        """
        Fire time after the one at ``previous``.

        Always later than ``previous``, even when ``now`` is slightly before it.
        Ticks that passed while a run was still going are skipped.
        """
        return self.next_fire(max(previous, now))

    def next_delay(self, now: datetime) -> float:
        """Seconds to sleep from ``now`` until the next fire."""
        return max(0.0, (self.next_fire(now) - now).total_seconds())

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.name} worker started with schedule '{self.cron_expression}' (UTC)")

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            logger.warning(f"{self.name} worker is not running")
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info(f"{self.name} worker stopped")

    async def _iteration(self) -> None:
        try:
            start_time = datetime.now(timezone.utc)
            await self.process()
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(
                f"{self.name} worker iteration completed",
                extra={"duration_seconds": duration, "worker": self.name},
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"{self.name} worker error: {str(e)}",
                exc_info=True,
                extra={"worker": self.name},
            )

    async def _run(self) -> None:
        """Main worker loop."""
        logger.info(f"{self.name} worker loop started")

        if self.run_on_start:
            await self._iteration()

        fire = self.next_fire(datetime.now(timezone.utc))
        while self._running:
            try:
                delay = max(0.0, (fire - datetime.now(timezone.utc)).total_seconds())
                logger.debug(
                    f"{self.name} worker sleeping until next fire",
                    extra={"worker": self.name, "delay_seconds": delay},
                )
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                logger.info(f"{self.name} worker loop cancelled")
                break
            await self._iteration()
            fire = self.following_fire(fire, datetime.now(timezone.utc))
