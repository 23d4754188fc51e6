from __future__ import annotations
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from .dispatcher import ReminderDispatcher
from .milestones import MilestoneNotifier
from .models import MilestoneReport, TickReport

HOURLY_JOB_ID = "habit-reminders"


class HabitScheduler:
    """Hourly driver for reminder ticks and the daily milestone check.

    Built once by the entry point and handed to whatever needs to trigger
    ticks. Deployments that rely on an external cron leave it disabled and
    call the HTTP trigger instead.
    """

    def __init__(
        self,
        dispatcher: ReminderDispatcher,
        milestones: MilestoneNotifier | None = None,
        *,
        timezone: str = "UTC",
        enabled: bool = True,
        milestone_hour: int = 0,
    ):
        self.dispatcher = dispatcher
        self.milestones = milestones
        self.tz = ZoneInfo(timezone)
        self.enabled = enabled
        self.milestone_hour = milestone_hour
        self._scheduler: AsyncIOScheduler | None = None
        self.ticks_run = 0
        self.last_report: TickReport | None = None
        self.last_milestones: MilestoneReport | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def start(self):
        """Register the top-of-hour job. Needs a running event loop."""
        if not self.enabled:
            logger.info("Habit scheduler disabled; relying on external cron trigger")
            return
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone=self.tz)
        self._scheduler.add_job(
            self.on_hour,
            CronTrigger(minute=0, timezone=self.tz),
            id=HOURLY_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        self._scheduler.start()
        logger.info(f"Habit scheduler started ({self.tz.key})")

    async def stop(self):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Habit scheduler stopped")

    async def on_hour(self, now: datetime | None = None):
        """Scheduled job body: one tick, plus milestones once a day."""
        now = now or self.now()
        try:
            await self.trigger_tick(now)
            if self.milestones and now.hour == self.milestone_hour:
                await self.trigger_milestones(now)
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Scheduled habit tick failed")

    async def trigger_tick(self, now: datetime | None = None) -> TickReport:
        report = await self.dispatcher.run_tick(now or self.now())
        self.ticks_run += 1
        self.last_report = report
        self.last_error = None
        return report

    async def trigger_milestones(self, now: datetime | None = None) -> MilestoneReport:
        if self.milestones is None:
            raise RuntimeError("No milestone notifier configured")
        report = await self.milestones.check(now or self.now())
        self.last_milestones = report
        return report

    def next_run(self) -> datetime | None:
        if not self.running:
            return None
        job = self._scheduler.get_job(HOURLY_JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> dict[str, Any]:
        next_run = self.next_run()
        return {
            "enabled": self.enabled,
            "running": self.running,
            "timezone": self.tz.key,
            "nextRun": next_run.isoformat() if next_run else None,
            "ticksRun": self.ticks_run,
            "lastTick": self.last_report.to_dict() if self.last_report else None,
            "lastMilestones": self.last_milestones.to_dict() if self.last_milestones else None,
            "lastError": self.last_error,
        }
