import asyncio
from collections.abc import Callable
from datetime import datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any

import structlog

from invest_manager.config import Settings
from invest_manager.errors import SchedulerError
from invest_manager.pipeline.orchestrator import AnalysisPipeline

MONTHLY_REMINDER_DAY = 5


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def next_fire_time(now: datetime, hour: int, minute: int, tz: tzinfo) -> datetime:
    """Next occurrence of ``hour:minute`` local time in ``tz`` strictly after ``now``."""
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), time(hour, minute), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(
            local_now.date() + timedelta(days=1), time(hour, minute), tzinfo=tz
        )
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    """Real seconds from ``now`` to ``target``.

    Aware datetimes sharing a tzinfo subtract as wall-clock time, which is an
    hour off across a DST change, so POSIX timestamps are compared.
    """
    return target.timestamp() - now.timestamp()


def is_monthly_reminder(fire_time: datetime, tz: tzinfo) -> bool:
    return fire_time.astimezone(tz).day == MONTHLY_REMINDER_DAY


class Scheduler:
    """Runs the pipeline once a day at a fixed local time.

    ``run_now`` bypasses the timer and may be called in any state; the
    pipeline's own guard keeps scheduled and manual runs from overlapping.
    """

    def __init__(
        self,
        pipeline: AnalysisPipeline,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        logger: Any = None,
    ) -> None:
        self.pipeline = pipeline
        self.tz = settings.tzinfo
        self.hour = settings.schedule_hour
        self.minute = settings.schedule_minute
        self.clock = clock or (lambda: datetime.now(tz=self.tz))
        self.logger = logger or structlog.get_logger()
        self.state = SchedulerState.STOPPED
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self.state is SchedulerState.RUNNING:
            raise SchedulerError("scheduler is already running")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="daily-analysis")
        self.state = SchedulerState.RUNNING
        self.logger.info(
            "scheduler_started",
            timezone=str(self.tz),
            at=f"{self.hour:02d}:{self.minute:02d}",
        )

    async def stop(self) -> None:
        if self.state is SchedulerState.STOPPED:
            return
        self.state = SchedulerState.STOPPED
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self.logger.info("scheduler_stopped")

    async def run_now(self, monthly_reminder: bool = False, *, timeout: float | None = None) -> None:
        self.logger.info("manual_run", monthly_reminder=monthly_reminder)
        await self.pipeline.run(monthly_reminder, timeout=timeout)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            fire_at = next_fire_time(self.clock(), self.hour, self.minute, self.tz)
            delay = seconds_until(fire_at, self.clock())
            self.logger.info("next_run_scheduled", fire_at=fire_at.isoformat(), delay=delay)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=max(delay, 0.0))
            except TimeoutError:
                await self._fire()

    async def _fire(self) -> None:
        monthly = is_monthly_reminder(self.clock(), self.tz)
        self.logger.info("scheduled_run", monthly_reminder=monthly)
        try:
            await self.pipeline.run(monthly)
        except Exception:
            self.logger.exception("scheduled_run_failed")
