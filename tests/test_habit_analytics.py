from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from habit.analytics import (
    analyze,
    daily_trend,
    most_productive_weekday,
    mood_productivity_trend,
    overview,
    recommendations,
    time_of_day_pattern,
    time_spent_histogram,
    weekly_average,
    weekly_success_rate,
)
from habit.models import CompletionEvent, HabitStats

from helpers import make_habit

TODAY = date(2024, 3, 10)  # Sunday


def _ev(day, hour=8, minutes=0, completed=True, mood=None, productivity=None):
    return CompletionEvent(
        habit_id="h1",
        user_id="u1",
        day=day,
        completed=completed,
        minutes_spent=minutes,
        mood=mood,
        productivity=productivity,
        completed_at=datetime(day.year, day.month, day.day, hour, 0, tzinfo=timezone.utc),
    )


def test_weekly_average_over_iso_weeks():
    # Mon 4th, Tue 5th (same week) + Mon 26 Feb
    events = [_ev(date(2024, 3, 4)), _ev(date(2024, 3, 5)), _ev(date(2024, 2, 26))]
    assert weekly_average(events) == 1.5
    assert weekly_average([]) == 0.0


def test_most_productive_weekday_tie_breaks_sunday_first():
    events = [_ev(date(2024, 3, 4)), _ev(date(2024, 3, 10))]  # Monday, Sunday
    assert most_productive_weekday(events) == "Sunday"
    assert most_productive_weekday([_ev(date(2024, 3, 4), completed=False)]) is None


def test_time_of_day_pattern_modal_hour():
    events = [_ev(TODAY, 7, 10), _ev(TODAY - timedelta(days=1), 7, 20), _ev(TODAY - timedelta(days=2), 19)]
    pattern = time_of_day_pattern(events)
    assert pattern["bestHour"] == 7
    assert pattern["bestTime"] == "morning"
    assert pattern["totalTimeSpent"] == 30
    assert pattern["averageTimeSpent"] == 15.0


def test_time_of_day_pattern_uses_timezone():
    pattern = time_of_day_pattern([_ev(TODAY, 7)], ZoneInfo("Europe/Warsaw"))
    assert pattern["bestHour"] == 8


def test_daily_trend_fills_gaps():
    trend = daily_trend([_ev(TODAY - timedelta(days=1), minutes=5)], TODAY, days=3)
    assert [t["date"] for t in trend] == ["2024-03-07", "2024-03-08", "2024-03-09", "2024-03-10"]
    assert [t["completed"] for t in trend] == [False, False, True, False]
    assert trend[2]["timeSpent"] == 5


def test_weekly_success_rate_per_week():
    events = [_ev(date(2024, 3, 4)), _ev(date(2024, 3, 5), completed=False), _ev(date(2024, 3, 11))]
    weeks = weekly_success_rate(events)
    assert [w["week"] for w in weeks] == ["2024-W10", "2024-W11"]
    assert weeks[0]["successRate"] == 50.0
    assert weeks[1]["completedDays"] == 1


def test_time_spent_histogram_buckets():
    events = [_ev(TODAY, minutes=m) for m in (3, 10, 15, 45, 60, 90)]
    hist = time_spent_histogram(events)
    counts = {b["range"]: b["count"] for b in hist["timeDistribution"]}
    assert counts == {"0-5 min": 1, "6-15 min": 2, "16-30 min": 0, "31-60 min": 2, "60+ min": 1}
    assert hist["minTimeSpent"] == 3
    assert hist["maxTimeSpent"] == 90


def test_mood_productivity_trend_window():
    events = [
        _ev(TODAY - timedelta(days=20), mood=1),
        _ev(TODAY - timedelta(days=2), mood=4, productivity=3),
        _ev(TODAY, mood=5, productivity=5),
    ]
    trend = mood_productivity_trend(events, TODAY)
    assert trend["averageMood"] == 3.33
    assert [p["date"] for p in trend["moodTrend"]] == ["2024-03-08", "2024-03-10"]
    assert trend["totalProductivityEntries"] == 2


def test_analyze_shape():
    events = [_ev(TODAY - timedelta(days=o)) for o in (3, 2, 1)] + [_ev(TODAY - timedelta(days=4), completed=False)]
    report = analyze(events, TODAY)
    assert report["streaks"]["currentStreak"] == 3
    assert report["successRate"] == 75.0
    assert report["completionsLast30Days"] == 3
    assert len(report["dailyTrend"]) == 31
    assert report["completionHistory"][0]["date"] == "2024-03-09"


def test_recommendations():
    weak = make_habit("h1", windows=["evening"], stats=HabitStats(success_rate=20.0))
    assert any("success rate is 20.0%" in r for r in recommendations([weak]))
    assert any("morning routine" in r for r in recommendations([weak]))

    strong = [make_habit(f"h{i}", windows=["morning"], stats=HabitStats(current_streak=8, success_rate=90.0)) for i in range(3)]
    recs = recommendations(strong)
    assert recs == ["Great job! You have 3 habits with 7+ day streaks. Keep up the momentum!"]


def test_overview_totals():
    habits = [
        make_habit("h1", category="health", stats=HabitStats(total_completions=5, current_streak=2, best_streak=4, success_rate=50.0)),
        make_habit("h2", category="health", stats=HabitStats(total_completions=1, best_streak=1, success_rate=100.0)),
    ]
    events = [_ev(TODAY), _ev(TODAY), _ev(TODAY - timedelta(days=1))]
    out = overview(habits, events, TODAY)
    assert out["overview"]["totalHabits"] == 2
    assert out["overview"]["activeHabits"] == 1
    assert out["overview"]["averageSuccessRate"] == 75.0
    assert out["streaks"]["bestStreak"] == 4
    assert out["streaks"]["currentStreaks"][0]["habitId"] == "h1"
    assert out["categories"] == {"health": 2}
    assert out["trends"]["bestDay"] == "2024-03-10"
