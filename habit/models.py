from __future__ import annotations
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass
class ReminderSettings:
    enabled: bool = False
    windows: List[str] = field(default_factory=list)  # buckets, ranges, "any"
    times: List[str] = field(default_factory=list)  # explicit "HH:MM"
    schedule: List[str] = field(default_factory=list)  # weekday names
    times_per_week: int = 7

    def tags(self) -> List[str]:
        return [*self.windows, *self.times]


@dataclass
class HabitStats:
    total_completions: int = 0
    current_streak: int = 0
    best_streak: int = 0
    success_rate: float = 0.0
    total_minutes_spent: int = 0


@dataclass
class Habit:
    habit_id: str
    user_id: str
    name: str
    category: str = "custom"
    description: str = ""
    is_active: bool = True
    reminder: ReminderSettings = field(default_factory=ReminderSettings)
    stats: HabitStats = field(default_factory=HabitStats)
    collaborators: List[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


@dataclass
class User:
    user_id: str
    email: str = ""
    display_name: str = ""
    xp: int = 0
    level: int = 1
    created_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data


@dataclass(frozen=True)
class UserContact:
    """What the dispatcher needs to know about an owner."""
    user_id: str
    email: str
    display_name: str


@dataclass
class CompletionEvent:
    habit_id: str
    user_id: str
    day: date
    completed: bool = True
    count: int = 1
    mood: Optional[int] = None
    productivity: Optional[int] = None
    note: str = ""
    minutes_spent: int = 0
    completed_at: datetime | None = None
    created_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "habit_id": self.habit_id,
            "user_id": self.user_id,
            "date": self.day.isoformat(),
            "completed": self.completed,
            "count": self.count,
            "mood": self.mood,
            "productivity": self.productivity,
            "notes": self.note,
            "time_spent": self.minutes_spent,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class LedgerEntry:
    habit_id: str
    user_id: str
    day: date
    channel: str = "email"
    sent_at: datetime | None = None
    email: str = ""
    time_window: str = ""
    hour: int | None = None
    tick_id: str = ""


@dataclass(frozen=True)
class StreakSnapshot:
    current: int
    best: int
    streak_days: tuple[date, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStreak": self.current,
            "bestStreak": self.best,
            "streakDays": [d.isoformat() for d in self.streak_days],
        }


@dataclass
class TickReport:
    tick_id: str
    started_at: datetime
    day: date
    time_window: str
    habits_loaded: int = 0
    eligible: int = 0
    deduped: int = 0
    sent: int = 0
    failed: int = 0
    orphaned: int = 0
    skipped: int = 0
    misconfigured: int = 0
    ledger_errors: int = 0
    duplicates: int = 0
    users_resolved: int = 0
    batches: int = 0
    failures: List[str] = field(default_factory=list)
    execution_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["day"] = self.day.isoformat()
        return data


@dataclass
class MilestoneReport:
    day: date
    checked: int = 0
    celebrated: int = 0
    already_celebrated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["day"] = self.day.isoformat()
        return data


@dataclass
class CompletionResult:
    event: CompletionEvent
    stats: HabitStats
    xp_earned: int
    xp: int
    level: int
    leveled_up: bool = False
    milestone: int | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completion": self.event.to_dict(),
            "stats": asdict(self.stats),
            "xpEarned": self.xp_earned,
            "xp": self.xp,
            "level": self.level,
            "leveledUp": self.leveled_up,
            "milestone": self.milestone,
        }
