import pytest

from habit.errors import InvalidWindowError
from habit.windows import is_due, time_window_for_hour, validate_windows, weekday_name, window_matches

from helpers import make_habit

ALL_HOURS = range(24)
ALL_DAYS = range(7)


def test_disabled_reminder_never_due():
    habit = make_habit(windows=["any"], enabled=False)
    assert not any(is_due(habit, h, d) for h in ALL_HOURS for d in ALL_DAYS)


def test_any_window_always_due():
    habit = make_habit(windows=["any"])
    assert all(is_due(habit, h, d) for h in ALL_HOURS for d in ALL_DAYS)


def test_explicit_time_matches_on_hour_only():
    habit = make_habit(windows=[], times=["14:00"])
    due_hours = [h for h in ALL_HOURS if is_due(habit, h, 2)]
    assert due_hours == [14]


def test_explicit_time_ignores_minutes():
    habit = make_habit(windows=[], times=["14:45"])
    assert is_due(habit, 14, 0)


def test_range_covers_inner_buckets_but_not_night():
    habit = make_habit(windows=["morning-evening"])
    for hour in ALL_HOURS:
        expected = time_window_for_hour(hour) != "night"
        assert is_due(habit, hour, 0) is expected, hour


def test_reversed_range_does_not_wrap():
    habit = make_habit(windows=["night-morning"])
    assert not any(is_due(habit, h, 0) for h in ALL_HOURS)


def test_night_wraps_past_midnight():
    habit = make_habit(windows=["night"])
    assert [h for h in ALL_HOURS if is_due(habit, h, 0)] == [0, 1, 2, 3, 4, 5, 22, 23]


def test_bucket_boundaries():
    assert time_window_for_hour(5) == "night"
    assert time_window_for_hour(6) == "morning"
    assert time_window_for_hour(12) == "afternoon"
    assert time_window_for_hour(18) == "evening"
    assert time_window_for_hour(22) == "night"


def test_any_tag_matching_is_enough():
    habit = make_habit(windows=["morning"], times=["20:00"])
    assert is_due(habit, 8, 0)
    assert is_due(habit, 20, 0)
    assert not is_due(habit, 13, 0)


def test_empty_windows_due_by_default_and_configurable():
    habit = make_habit(windows=[])
    assert all(is_due(habit, h, 0) for h in ALL_HOURS)
    assert not is_due(habit, 9, 0, empty_windows_due=False)


def test_weekday_gate_applies_below_daily_frequency():
    habit = make_habit(windows=["any"], times_per_week=3, schedule=["monday", "wednesday", "friday"])
    assert is_due(habit, 9, 0)
    assert not is_due(habit, 9, 1)
    assert is_due(habit, 9, "fri")


def test_daily_frequency_skips_weekday_gate():
    habit = make_habit(windows=["any"], times_per_week=7, schedule=["monday"])
    assert all(is_due(habit, 9, d) for d in ALL_DAYS)


@pytest.mark.parametrize("tag", ["brunch", "25:00", "12:7", "morning-lunch", "  "])
def test_malformed_tags_raise(tag):
    with pytest.raises(InvalidWindowError):
        window_matches(tag, 9)


def test_malformed_tag_raises_even_if_another_matches():
    habit = make_habit(windows=["any", "teatime"])
    with pytest.raises(InvalidWindowError):
        is_due(habit, 9, 0)


def test_hour_out_of_range():
    with pytest.raises(ValueError):
        is_due(make_habit(), 24, 0)


def test_validate_windows_normalizes():
    assert validate_windows([" Morning ", "ANY", "07:30"]) == ["morning", "any", "07:30"]


def test_weekday_name_accepts_ints_and_abbreviations():
    assert weekday_name(6) == "sunday"
    assert weekday_name("Tue") == "tuesday"
    with pytest.raises(ValueError):
        weekday_name("someday")
