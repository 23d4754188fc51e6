from datetime import date, timedelta

from habit.models import CompletionEvent
from habit.streaks import compute_streaks, milestone_label, reached_milestone, success_rate

TODAY = date(2024, 3, 10)


def _events(*offsets, completed=True):
    return [CompletionEvent(habit_id="h1", user_id="u1", day=TODAY - timedelta(days=o), completed=completed) for o in offsets]


def test_current_streak_counts_from_yesterday_when_today_open():
    snap = compute_streaks(_events(3, 2, 1), TODAY)
    assert snap.current == 3
    assert snap.best >= 3
    assert snap.streak_days[0] == TODAY - timedelta(days=1)


def test_current_streak_includes_today_when_done():
    assert compute_streaks(_events(2, 1, 0), TODAY).current == 3


def test_gap_before_yesterday_breaks_current():
    snap = compute_streaks(_events(5, 4, 3, 2), TODAY)
    assert snap.current == 0
    assert snap.best == 4


def test_best_streak_independent_of_recency():
    events = _events(20, 19, 18, 17, 16, 1, 0)
    snap = compute_streaks(events, TODAY)
    assert snap.current == 2
    assert snap.best == 5


def test_failed_days_do_not_count():
    events = _events(2, 0) + _events(1, completed=False)
    assert compute_streaks(events, TODAY).current == 1


def test_streaks_are_idempotent():
    events = _events(9, 8, 6, 5, 4, 1)
    assert compute_streaks(events, TODAY) == compute_streaks(events, TODAY)


def test_empty_log():
    snap = compute_streaks([], TODAY)
    assert (snap.current, snap.best) == (0, 0)


def test_success_rate():
    events = _events(3, 2, 1) + _events(0, completed=False)
    assert success_rate(events) == 75.0
    assert success_rate([]) == 0.0
    assert success_rate(_events(2, 1) + _events(0, completed=False)) == 66.7


def test_milestones():
    assert reached_milestone(7) == 7
    assert reached_milestone(8) is None
    assert milestone_label(30) == "1 month"
    assert milestone_label(100) == "100 days"
