"""Time-window matching for habit reminders.

A habit carries a set of window tags. The hourly tick asks ``is_due`` whether
the current hour and weekday fall inside any of them. Everything here is pure
and safe to call from concurrent ticks.

Supported tags:

* ``morning`` [06, 12), ``afternoon`` [12, 18), ``evening`` [18, 22) and
  ``night`` [22, 06), which wraps past midnight
* ``any``, matches every hour
* ``"start-end"`` bucket ranges such as ``morning-evening``, inclusive and
  never wrapping
* ``"HH:MM"`` explicit times, compared on the hour only
"""
from __future__ import annotations

import re
from typing import Iterable

from .errors import InvalidWindowError
from .models import Habit

WINDOW_ORDER = ("morning", "afternoon", "evening", "night")
ANY_WINDOW = "any"
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def time_window_for_hour(hour: int) -> str:
    _check_hour(hour)
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def weekday_name(weekday: int | str) -> str:
    """Normalize ``datetime.weekday()`` ints or names to a lower-case name."""
    if isinstance(weekday, int):
        if not 0 <= weekday <= 6:
            raise ValueError(f"weekday out of range: {weekday}")
        return WEEKDAYS[weekday]
    name = str(weekday).strip().lower()
    for full in WEEKDAYS:
        if name == full or name == full[:3]:
            return full
    raise ValueError(f"unknown weekday: {weekday!r}")


def _check_hour(hour: int):
    if not 0 <= hour <= 23:
        raise ValueError(f"hour out of range: {hour}")


def parse_time_tag(tag: str) -> int:
    """Return the hour of an explicit ``HH:MM`` tag."""
    m = _TIME_RE.match(tag.strip())
    if not m:
        raise InvalidWindowError(tag, "expected HH:MM")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise InvalidWindowError(tag, "time out of range")
    return hour


def window_matches(tag: str, hour: int) -> bool:
    """Check a single tag against ``hour``. Raises InvalidWindowError."""
    norm = tag.strip().lower()
    if not norm:
        raise InvalidWindowError(tag, "empty tag")
    if norm == ANY_WINDOW:
        return True
    current = time_window_for_hour(hour)
    if norm in WINDOW_ORDER:
        return norm == current
    if ":" in norm:
        return parse_time_tag(norm) == hour
    if "-" in norm:
        start, _, end = norm.partition("-")
        if start not in WINDOW_ORDER or end not in WINDOW_ORDER:
            raise InvalidWindowError(tag, "range bounds must be window names")
        idx = WINDOW_ORDER.index(current)
        return WINDOW_ORDER.index(start) <= idx <= WINDOW_ORDER.index(end)
    raise InvalidWindowError(tag)


def validate_windows(tags: Iterable[str]) -> list[str]:
    """Normalize tags and raise on the first malformed one."""
    out = []
    for tag in tags:
        # hour 0 is arbitrary, only the parse matters here
        window_matches(tag, 0)
        out.append(tag.strip().lower())
    return out


def is_due(habit: Habit, now_hour: int, now_weekday: int | str, *, empty_windows_due: bool = True) -> bool:
    """Decide whether ``habit`` should be reminded at this hour and weekday.

    Every tag is parsed before the result is returned, so a habit with a
    malformed tag raises InvalidWindowError even when another tag matches.
    """
    _check_hour(now_hour)
    reminder = habit.reminder
    if not reminder.enabled:
        return False

    tags = reminder.tags()
    if tags:
        matches = [window_matches(tag, now_hour) for tag in tags]
        if not any(matches):
            return False
    elif not empty_windows_due:
        return False

    if reminder.times_per_week < 7:
        day = weekday_name(now_weekday)
        allowed = {weekday_name(d) for d in reminder.schedule}
        return day in allowed
    return True
