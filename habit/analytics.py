"""In-memory analytics over completion events.

Callers fetch a bounded window (30 or 90 days usually) and pass the list in;
nothing here queries storage. Results are plain dicts ready for JSON.
"""
from __future__ import annotations

from collections import Counter, OrderedDict
from datetime import date, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Sequence

from .models import CompletionEvent, Habit
from .streaks import compute_streaks, success_rate
from .windows import time_window_for_hour

# Sunday-first, the order ties are broken in
WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

TIME_BUCKETS = (
    ("0-5 min", 0, 5),
    ("6-15 min", 6, 15),
    ("16-30 min", 16, 30),
    ("31-60 min", 31, 60),
    ("60+ min", 61, None),
)

LOW_SUCCESS_RATE = 40.0


def _completed(events: Iterable[CompletionEvent]) -> List[CompletionEvent]:
    return [e for e in events if e.completed]


def _week_key(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def _sunday_index(day: date) -> int:
    return (day.weekday() + 1) % 7


def weekly_average(events: Sequence[CompletionEvent]) -> float:
    completed = _completed(events)
    weeks = {_week_key(e.day) for e in completed}
    if not weeks:
        return 0.0
    return round(len(completed) / len(weeks), 2)


def most_productive_weekday(events: Sequence[CompletionEvent]) -> str | None:
    counts = [0] * 7
    for e in _completed(events):
        counts[_sunday_index(e.day)] += 1
    best_idx = None
    best = 0
    for idx, count in enumerate(counts):
        if count > best:
            best_idx, best = idx, count
    return WEEKDAY_NAMES[best_idx] if best_idx is not None else None


def time_of_day_pattern(events: Sequence[CompletionEvent], tz: tzinfo | None = None) -> Dict[str, Any]:
    completed = _completed(events)
    by_hour: Counter[int] = Counter()
    for e in completed:
        if e.completed_at is None:
            continue
        ts = e.completed_at.astimezone(tz) if tz else e.completed_at
        by_hour[ts.hour] += 1

    timed = [e.minutes_spent for e in completed if e.minutes_spent > 0]
    total_minutes = sum(timed)

    best_hour = None
    if by_hour:
        best_hour = min(by_hour, key=lambda h: (-by_hour[h], h))
    return {
        "bestHour": best_hour,
        "bestTime": time_window_for_hour(best_hour) if best_hour is not None else None,
        "completionsByHour": {h: by_hour[h] for h in sorted(by_hour)},
        "totalTimeSpent": total_minutes,
        "averageTimeSpent": round(total_minutes / len(timed), 1) if timed else 0.0,
    }


def daily_trend(events: Sequence[CompletionEvent], today: date | None = None, days: int = 30) -> List[Dict[str, Any]]:
    today = today or date.today()
    by_day: Dict[date, List[CompletionEvent]] = {}
    for e in events:
        by_day.setdefault(e.day, []).append(e)
    trend = []
    for offset in range(days, -1, -1):
        day = today - timedelta(days=offset)
        day_events = by_day.get(day, [])
        done = _completed(day_events)
        trend.append({
            "date": day.isoformat(),
            "completed": bool(done),
            "count": sum(e.count for e in done),
            "timeSpent": sum(e.minutes_spent for e in day_events),
        })
    return trend


def weekly_success_rate(events: Sequence[CompletionEvent]) -> List[Dict[str, Any]]:
    weeks: Dict[str, List[CompletionEvent]] = {}
    for e in events:
        weeks.setdefault(_week_key(e.day), []).append(e)
    out = []
    for week in sorted(weeks):
        week_events = weeks[week]
        out.append({
            "week": week,
            "successRate": success_rate(week_events),
            "totalDays": len(week_events),
            "completedDays": len(_completed(week_events)),
        })
    return out


def time_spent_histogram(events: Sequence[CompletionEvent]) -> Dict[str, Any]:
    times = [e.minutes_spent for e in _completed(events) if e.minutes_spent > 0]
    distribution = []
    for label, low, high in TIME_BUCKETS:
        count = sum(1 for t in times if t >= low and (high is None or t <= high))
        distribution.append({"range": label, "count": count})
    if not times:
        return {
            "averageTimeSpent": 0.0,
            "totalTimeSpent": 0,
            "minTimeSpent": 0,
            "maxTimeSpent": 0,
            "timeDistribution": distribution,
        }
    total = sum(times)
    return {
        "averageTimeSpent": round(total / len(times), 1),
        "totalTimeSpent": total,
        "minTimeSpent": min(times),
        "maxTimeSpent": max(times),
        "timeDistribution": distribution,
    }


def _mean(values: List[int]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def mood_productivity_trend(events: Sequence[CompletionEvent], today: date | None = None, days: int = 14) -> Dict[str, Any]:
    today = today or date.today()
    moods = [e.mood for e in events if e.mood is not None]
    prods = [e.productivity for e in events if e.productivity is not None]
    start = today - timedelta(days=days)

    mood_by_day: Dict[date, List[int]] = OrderedDict()
    prod_by_day: Dict[date, List[int]] = OrderedDict()
    for e in sorted(events, key=lambda ev: ev.day):
        if not start <= e.day <= today:
            continue
        if e.mood is not None:
            mood_by_day.setdefault(e.day, []).append(e.mood)
        if e.productivity is not None:
            prod_by_day.setdefault(e.day, []).append(e.productivity)

    return {
        "averageMood": _mean(moods),
        "averageProductivity": _mean(prods),
        "moodTrend": [{"date": d.isoformat(), "mood": _mean(v)} for d, v in mood_by_day.items()],
        "productivityTrend": [{"date": d.isoformat(), "productivity": _mean(v)} for d, v in prod_by_day.items()],
        "totalMoodEntries": len(moods),
        "totalProductivityEntries": len(prods),
    }


def completion_history(events: Sequence[CompletionEvent]) -> List[Dict[str, Any]]:
    return [
        {
            "date": e.day.isoformat(),
            "count": e.count,
            "timeSpent": e.minutes_spent,
            "mood": e.mood,
            "productivity": e.productivity,
            "notes": e.note,
        }
        for e in sorted(_completed(events), key=lambda ev: ev.day, reverse=True)
    ]


def analyze(events: Sequence[CompletionEvent], today: date | None = None, tz: tzinfo | None = None) -> Dict[str, Any]:
    """Full per-habit report over an already bounded event list."""
    today = today or date.today()
    events = list(events)
    streaks = compute_streaks(events, today)
    recent_start = today - timedelta(days=30)
    return {
        "streaks": streaks.to_dict(),
        "successRate": success_rate(events),
        "totalDaysTracked": len(events),
        "completionsLast30Days": len([e for e in _completed(events) if e.day >= recent_start]),
        "weeklyAverage": weekly_average(events),
        "mostProductiveWeekday": most_productive_weekday(events),
        "timeOfDayPattern": time_of_day_pattern(events, tz),
        "dailyTrend": daily_trend([e for e in events if e.day >= recent_start], today),
        "weeklySuccessRate": weekly_success_rate(events),
        "timeSpentHistogram": time_spent_histogram(events),
        "moodProductivityTrend": mood_productivity_trend(events, today),
        "completionHistory": completion_history(events),
    }


def recommendations(habits: Sequence[Habit]) -> List[str]:
    out = []
    for h in habits:
        if h.stats.success_rate < LOW_SUCCESS_RATE:
            out.append(
                f'Consider adjusting your "{h.name}" routine. Your success rate is {h.stats.success_rate:.1f}%.'
            )
    if not any("morning" in h.reminder.windows for h in habits):
        out.append("Consider adding a morning routine to start your day productively.")
    consistent = [h for h in habits if h.stats.current_streak >= 7]
    if len(consistent) >= 3:
        out.append(
            f"Great job! You have {len(consistent)} habits with 7+ day streaks. Keep up the momentum!"
        )
    return out


def overview(habits: Sequence[Habit], events: Sequence[CompletionEvent], today: date | None = None) -> Dict[str, Any]:
    """Cross-habit summary for one user."""
    today = today or date.today()
    daily: Counter[str] = Counter()
    for e in _completed(events):
        daily[e.day.isoformat()] += 1
    best_day = None
    if daily:
        best_day = min(daily, key=lambda d: (-daily[d], d))
    categories = Counter(h.category for h in habits)

    return {
        "overview": {
            "totalHabits": len(habits),
            "activeHabits": len([h for h in habits if h.stats.current_streak > 0]),
            "totalCompletions": sum(h.stats.total_completions for h in habits),
            "totalMinutesSpent": sum(h.stats.total_minutes_spent for h in habits),
            "averageSuccessRate": round(sum(h.stats.success_rate for h in habits) / len(habits), 1) if habits else 0.0,
        },
        "streaks": {
            "bestStreak": max((h.stats.best_streak for h in habits), default=0),
            "currentStreaks": sorted(
                ({"habitId": h.habit_id, "name": h.name, "streak": h.stats.current_streak} for h in habits),
                key=lambda item: -item["streak"],
            ),
        },
        "categories": dict(categories),
        "trends": {
            "daily": [{"date": d, "count": daily[d]} for d in sorted(daily)],
            "weeklyAverage": weekly_average(events),
            "bestDay": best_day,
        },
        "recommendations": recommendations(habits),
        "generatedFor": today.isoformat(),
    }
