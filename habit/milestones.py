from __future__ import annotations
import asyncio
from datetime import datetime, timezone

from loguru import logger

from .dispatcher import MessageSender
from .errors import DuplicateLedgerEntryError, StorageError
from .models import Habit, MilestoneReport, UserContact
from .storage import HabitStorage
from .streaks import STREAK_MILESTONES
from .templates import DEFAULT_FRONTEND_URL, render_milestone


class MilestoneNotifier:
    """Celebrates 7/30/100 day streaks, once per habit and milestone."""

    def __init__(
        self,
        storage: HabitStorage,
        sender: MessageSender,
        *,
        milestones: tuple[int, ...] = STREAK_MILESTONES,
        failure_sample_size: int = 5,
        frontend_url: str = DEFAULT_FRONTEND_URL,
    ):
        self.storage = storage
        self.sender = sender
        self.milestones = milestones
        self.failure_sample_size = failure_sample_size
        self.frontend_url = frontend_url

    async def check(self, now: datetime | None = None) -> MilestoneReport:
        now = now or datetime.now(timezone.utc)
        report = MilestoneReport(day=now.date())
        habits = await asyncio.to_thread(self.storage.habits_with_streak, self.milestones)
        report.checked = len(habits)
        if not habits:
            return report
        users = await asyncio.to_thread(self.storage.resolve_users, {h.user_id for h in habits})
        for habit in habits:
            try:
                await self._celebrate(habit, users.get(habit.user_id), report)
            except Exception as exc:
                report.failed += 1
                if len(report.failures) < self.failure_sample_size:
                    report.failures.append(f"Habit {habit.habit_id}: {type(exc).__name__}: {exc}")
                logger.exception(f"Milestone for habit {habit.habit_id} failed")
        logger.info(
            f"Milestone check: checked={report.checked} celebrated={report.celebrated} "
            f"already={report.already_celebrated} failed={report.failed}"
        )
        return report

    async def _celebrate(self, habit: Habit, user: UserContact | None, report: MilestoneReport):
        streak = habit.stats.current_streak
        key = f"streak_{streak}"
        if await asyncio.to_thread(self.storage.milestone_recorded, habit.habit_id, key):
            report.already_celebrated += 1
            return
        if user is None or not user.email:
            report.skipped += 1
            return
        content = render_milestone(habit, user, streak, self.frontend_url)
        if not await self.sender.send(user.email, content):
            report.failed += 1
            if len(report.failures) < self.failure_sample_size:
                report.failures.append(f"Habit {habit.habit_id}: transport reported failure")
            return
        try:
            await asyncio.to_thread(self.storage.insert_milestone, habit.habit_id, habit.user_id, key, streak)
        except DuplicateLedgerEntryError:
            logger.warning(f"Milestone {key} for {habit.habit_id} recorded concurrently")
        except StorageError as exc:
            logger.error(f"Milestone {key} sent for {habit.habit_id} but not recorded: {exc}")
        report.celebrated += 1
        logger.info(f"Streak milestone ({streak} days) celebrated for {habit.name}")
