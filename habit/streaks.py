"""Streak and success-rate calculations over a habit's completion log.

Pure functions of the log: the same events always give the same answer, so
``Habit.stats`` can be rebuilt from scratch at any time.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Protocol

from .models import StreakSnapshot

STREAK_MILESTONES = (7, 30, 100)


class DayOutcome(Protocol):
    day: date
    completed: bool


def completed_days(events: Iterable[DayOutcome]) -> set[date]:
    return {e.day for e in events if e.completed}


def compute_streaks(events: Iterable[DayOutcome], today: date | None = None) -> StreakSnapshot:
    today = today or date.today()
    done = completed_days(events)
    if not done:
        return StreakSnapshot(current=0, best=0)

    # today still open: yesterday's run stays current until the day is over
    cursor = today if today in done else today - timedelta(days=1)
    run: list[date] = []
    while cursor in done:
        run.append(cursor)
        cursor -= timedelta(days=1)

    best = 0
    length = 0
    previous: date | None = None
    for day in sorted(done):
        if previous is not None and day - previous == timedelta(days=1):
            length += 1
        else:
            length = 1
        best = max(best, length)
        previous = day

    return StreakSnapshot(current=len(run), best=max(best, len(run)), streak_days=tuple(run))


def success_rate(events: Iterable[DayOutcome]) -> float:
    total = 0
    completed = 0
    for e in events:
        total += 1
        if e.completed:
            completed += 1
    if total == 0:
        return 0.0
    return round(completed / total * 100, 1)


def reached_milestone(streak: int) -> int | None:
    return streak if streak in STREAK_MILESTONES else None


def milestone_label(streak: int) -> str:
    if streak == 7:
        return "1 week"
    if streak == 30:
        return "1 month"
    if streak == 100:
        return "100 days"
    return f"{streak} days"
