from __future__ import annotations
from datetime import date, datetime
from zoneinfo import ZoneInfo

from loguru import logger

from .errors import HabitNotFoundError, InvalidCompletionError, UserNotFoundError
from .models import CompletionEvent, CompletionResult, Habit, HabitStats
from .storage import HabitStorage
from .streaks import compute_streaks, reached_milestone, success_rate

DEFAULT_XP_PER_COMPLETION = 10
SCORE_RANGE = (1, 5)


def level_for_xp(xp: int) -> int:
    return xp // 1000 + 1


def _check_score(name: str, value: int | None) -> int | None:
    if value is None:
        return None
    low, high = SCORE_RANGE
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidCompletionError(f"{name} must be an integer between {low} and {high}")
    return value


class CompletionRecorder:
    """Upserts the day's completion and keeps habit stats and user XP in sync."""

    def __init__(
        self,
        storage: HabitStorage,
        *,
        xp_per_completion: int = DEFAULT_XP_PER_COMPLETION,
        timezone: str = "UTC",
    ):
        self.storage = storage
        self.xp_per_completion = xp_per_completion
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def record_completion(
        self,
        habit_id: str,
        user_id: str,
        day: date | None = None,
        *,
        mood: int | None = None,
        productivity: int | None = None,
        minutes_spent: int | None = None,
        note: str | None = None,
        now: datetime | None = None,
    ) -> CompletionResult:
        # calendar days are local to the configured zone
        now = (now or self.now()).astimezone(self.tz)
        day = day or now.date()
        mood = _check_score("mood", mood)
        productivity = _check_score("productivity", productivity)
        if minutes_spent is not None and minutes_spent < 0:
            raise InvalidCompletionError("minutes_spent cannot be negative")

        habit = self.storage.get_habit(habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        if self.storage.get_user(user_id) is None:
            raise UserNotFoundError(user_id)

        event = self.storage.upsert_completion(
            CompletionEvent(
                habit_id=habit_id,
                user_id=user_id,
                day=day,
                completed=True,
                mood=mood,
                productivity=productivity,
                note=note or "",
                minutes_spent=minutes_spent or 0,
                completed_at=now,
            )
        )

        stats = self._stats_for(habit_id, user_id, now.date())
        milestone = None
        if user_id == habit.user_id:
            self.storage.update_habit_stats(habit_id, stats)
            if stats.current_streak > habit.stats.current_streak:
                milestone = reached_milestone(stats.current_streak)

        xp, level, previous_level = self.storage.award_xp(user_id, self.xp_per_completion)
        logger.info(
            f"Completion recorded for habit {habit_id} by {user_id} on {day.isoformat()} "
            f"(count={event.count}, streak={stats.current_streak}, xp={xp})"
        )
        return CompletionResult(
            event=event,
            stats=stats,
            xp_earned=self.xp_per_completion,
            xp=xp,
            level=level,
            leveled_up=level > previous_level,
            milestone=milestone,
        )

    def _stats_for(self, habit_id: str, user_id: str, today: date) -> HabitStats:
        events = self.storage.completions_for_habit(habit_id, user_id)
        streaks = compute_streaks(events, today)
        completed = [e for e in events if e.completed]
        return HabitStats(
            total_completions=sum(e.count for e in completed),
            current_streak=streaks.current,
            best_streak=streaks.best,
            success_rate=success_rate(events),
            total_minutes_spent=sum(e.minutes_spent for e in events),
        )

    def recompute_stats(self, habit_id: str, today: date | None = None) -> Habit:
        """Rebuild the owner's stats from the completion log."""
        habit = self.storage.get_habit(habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        habit.stats = self._stats_for(habit_id, habit.user_id, today or self.now().date())
        self.storage.update_habit_stats(habit_id, habit.stats)
        return habit
