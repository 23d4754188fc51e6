"""Turn loose habit/user documents into typed records.

Older clients stored habits as free-form documents (camelCase keys,
``timeOfDay`` as a string or a list, reminder flags in two places). This
module is the single place that knows those shapes; everything past the
storage boundary works on ``Habit`` and ``User``.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List

from .errors import InvalidHabitDocumentError
from .models import Habit, HabitStats, ReminderSettings, User
from .windows import WEEKDAYS, weekday_name


def _first(doc: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in doc and doc[key] is not None:
            return doc[key]
    return default


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, date):
        ts = datetime(value.year, value.month, value.day)
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidHabitDocumentError(f"bad timestamp {value!r}") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise InvalidHabitDocumentError(f"bad date {value!r}") from exc


def normalize_schedule(values: Iterable[Any]) -> List[str]:
    days = []
    for value in values:
        try:
            name = weekday_name(value if isinstance(value, int) else str(value))
        except ValueError as exc:
            raise InvalidHabitDocumentError(str(exc)) from exc
        if name not in days:
            days.append(name)
    return sorted(days, key=WEEKDAYS.index)


def split_tags(values: Iterable[Any]) -> tuple[List[str], List[str]]:
    """Split raw tags into (windows, explicit times)."""
    windows: List[str] = []
    times: List[str] = []
    for raw in values:
        tag = str(raw).strip().lower()
        if not tag:
            continue
        target = times if ":" in tag else windows
        if tag not in target:
            target.append(tag)
    return windows, times


def reminder_from_document(doc: Dict[str, Any]) -> ReminderSettings:
    settings = doc.get("settings") or {}
    reminders = settings.get("reminders") or doc.get("reminder") or {}
    legacy = doc.get("reminderSettings") or {}

    enabled = bool(reminders.get("enabled") or legacy.get("enabled"))
    raw_tags = _as_list(_first(settings, "timeOfDay", "time_of_day", default=None))
    raw_tags += _as_list(reminders.get("windows"))
    raw_tags += _as_list(reminders.get("times"))
    windows, times = split_tags(raw_tags)
    schedule = normalize_schedule(_as_list(_first(reminders, "schedule", default=legacy.get("schedule"))))
    times_per_week = _as_int(
        _first(settings, "timesPerWeek", "times_per_week", default=reminders.get("times_per_week", 7)), 7
    )
    return ReminderSettings(
        enabled=enabled,
        windows=windows,
        times=times,
        schedule=schedule,
        times_per_week=times_per_week,
    )


def stats_from_document(raw: Dict[str, Any] | None) -> HabitStats:
    raw = raw or {}
    return HabitStats(
        total_completions=_as_int(_first(raw, "totalCompletions", "total_completions", default=0)),
        current_streak=_as_int(_first(raw, "currentStreak", "current_streak", default=0)),
        best_streak=_as_int(_first(raw, "bestStreak", "best_streak", default=0)),
        success_rate=float(_first(raw, "successRate", "success_rate", default=0.0) or 0.0),
        total_minutes_spent=_as_int(_first(raw, "totalMinutesSpent", "total_minutes_spent", default=0)),
    )


def habit_from_document(doc: Dict[str, Any]) -> Habit:
    """Normalize a stored or imported habit document."""
    habit_id = _first(doc, "habit_id", "_id", "id")
    user_id = _first(doc, "user_id", "userId")
    if habit_id is None or user_id is None:
        raise InvalidHabitDocumentError("habit document needs an id and an owner")
    if "reminder" in doc and isinstance(doc["reminder"], ReminderSettings):
        reminder = doc["reminder"]
    else:
        reminder = reminder_from_document(doc)
    return Habit(
        habit_id=str(habit_id),
        user_id=str(user_id),
        name=str(doc.get("name") or "Untitled habit"),
        category=str(doc.get("category") or "custom"),
        description=str(doc.get("description") or ""),
        is_active=bool(_first(doc, "is_active", "isActive", default=True)),
        reminder=reminder,
        stats=stats_from_document(doc.get("stats")),
        collaborators=[str(c) for c in _as_list(doc.get("collaborators"))],
        created_at=parse_datetime(_first(doc, "created_at", "createdAt")),
        updated_at=parse_datetime(_first(doc, "updated_at", "updatedAt")),
    )


def user_from_document(doc: Dict[str, Any]) -> User:
    user_id = _first(doc, "user_id", "_id", "id")
    if user_id is None:
        raise InvalidHabitDocumentError("user document needs an id")
    xp = max(0, _as_int(doc.get("xp"), 0))
    return User(
        user_id=str(user_id),
        email=str(doc.get("email") or "").strip().lower(),
        display_name=str(_first(doc, "display_name", "displayName", default="") or ""),
        xp=xp,
        level=max(_as_int(doc.get("level"), 1), xp // 1000 + 1),
        created_at=parse_datetime(_first(doc, "created_at", "createdAt")),
    )
