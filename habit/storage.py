from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

from loguru import logger

from .errors import DuplicateLedgerEntryError, StorageError, UserNotFoundError
from .models import CompletionEvent, Habit, HabitStats, LedgerEntry, User, UserContact
from .normalize import habit_from_document, parse_datetime, parse_day, user_from_document


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


class HabitStorage:
    """SQLite-backed document store for habits, completions and the reminder ledger.

    The connection is shared between the event loop and worker threads
    (``asyncio.to_thread``), so every statement runs under one lock.
    """

    def __init__(self, db_path: str | Path = "habits.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as exc:
                raise StorageError(f"Cannot open {self.db_path}: {exc}") from exc
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    @contextmanager
    def _cursor(self):
        with self._lock:
            conn = self._get_conn()
            cur = conn.cursor()
            try:
                yield cur
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise
            except sqlite3.Error as exc:
                conn.rollback()
                raise StorageError(str(exc)) from exc
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _ensure_schema(self):
        with self._cursor() as cur:
            cur.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    display_name TEXT,
                    xp INTEGER NOT NULL DEFAULT 0,
                    level INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT
                );
                CREATE TABLE IF NOT EXISTS habits (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT,
                    description TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    reminder_enabled INTEGER NOT NULL DEFAULT 0,
                    reminder TEXT NOT NULL,
                    stats TEXT NOT NULL,
                    collaborators TEXT,
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS habit_completions (
                    habit_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    day TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 1,
                    count INTEGER NOT NULL DEFAULT 1,
                    mood INTEGER,
                    productivity INTEGER,
                    note TEXT,
                    minutes_spent INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    UNIQUE(habit_id, user_id, day)
                );
                CREATE TABLE IF NOT EXISTS habit_reminders (
                    habit_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    day TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    email TEXT,
                    time_window TEXT,
                    hour INTEGER,
                    tick_id TEXT,
                    sent_at TEXT NOT NULL,
                    UNIQUE(habit_id, day)
                );
                CREATE TABLE IF NOT EXISTS habit_milestones (
                    habit_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    milestone_key TEXT NOT NULL,
                    streak INTEGER NOT NULL,
                    celebrated_at TEXT NOT NULL,
                    UNIQUE(habit_id, milestone_key)
                );
                CREATE INDEX IF NOT EXISTS idx_habits_reminders ON habits(is_active, reminder_enabled);
                CREATE INDEX IF NOT EXISTS idx_habits_user ON habits(user_id);
                CREATE INDEX IF NOT EXISTS idx_completions_habit_day ON habit_completions(habit_id, day);
                CREATE INDEX IF NOT EXISTS idx_reminders_sent ON habit_reminders(sent_at);
                """
            )

    # --- Users ---
    def upsert_user(self, user: User):
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO users (id, email, display_name, xp, level, created_at)
                VALUES (?,?,?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET email=excluded.email, display_name=excluded.display_name, xp=excluded.xp, level=excluded.level
                """,
                (
                    user.user_id,
                    (user.email or "").strip().lower(),
                    user.display_name,
                    user.xp,
                    user.level,
                    _iso(user.created_at or _now()),
                ),
            )

    def _user_from_row(self, r: sqlite3.Row) -> User:
        return user_from_document(
            {
                "user_id": r["id"],
                "email": r["email"],
                "display_name": r["display_name"],
                "xp": r["xp"],
                "level": r["level"],
                "created_at": r["created_at"],
            }
        )

    def get_user(self, user_id: str) -> User | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM users WHERE id=?", (user_id,))
            r = cur.fetchone()
        return self._user_from_row(r) if r else None

    def get_user_by_email(self, email: str) -> User | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM users WHERE email=?", (email.strip().lower(),))
            r = cur.fetchone()
        return self._user_from_row(r) if r else None

    def get_users(self) -> List[User]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM users ORDER BY id")
            rows = cur.fetchall()
        return [self._user_from_row(r) for r in rows]

    def resolve_users(self, user_ids: Iterable[str]) -> Dict[str, UserContact]:
        """Batched owner lookup. Unknown ids are simply absent from the result."""
        ids = sorted({str(u) for u in user_ids})
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        with self._cursor() as cur:
            cur.execute(f"SELECT id, email, display_name FROM users WHERE id IN ({placeholders})", ids)
            rows = cur.fetchall()
        return {
            r["id"]: UserContact(user_id=r["id"], email=r["email"] or "", display_name=r["display_name"] or "")
            for r in rows
        }

    def award_xp(self, user_id: str, amount: int) -> tuple[int, int, int]:
        """Add XP and return (xp, level, previous_level). Level never drops."""
        with self._cursor() as cur:
            cur.execute("SELECT xp, level FROM users WHERE id=?", (user_id,))
            r = cur.fetchone()
            if r is None:
                raise UserNotFoundError(user_id)
            xp = max(0, r["xp"] + amount)
            previous = r["level"]
            level = max(previous, xp // 1000 + 1)
            cur.execute("UPDATE users SET xp=?, level=? WHERE id=?", (xp, level, user_id))
        return xp, level, previous

    # --- Habit CRUD ---
    def upsert_habit(self, habit: Habit):
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO habits (id, user_id, name, category, description, is_active, reminder_enabled, reminder, stats, collaborators, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET user_id=excluded.user_id, name=excluded.name, category=excluded.category, description=excluded.description, is_active=excluded.is_active, reminder_enabled=excluded.reminder_enabled, reminder=excluded.reminder, stats=excluded.stats, collaborators=excluded.collaborators, updated_at=excluded.updated_at
                """,
                (
                    habit.habit_id,
                    habit.user_id,
                    habit.name,
                    habit.category,
                    habit.description,
                    1 if habit.is_active else 0,
                    1 if habit.reminder.enabled else 0,
                    json.dumps(asdict(habit.reminder)),
                    json.dumps(asdict(habit.stats)),
                    json.dumps(habit.collaborators),
                    _iso(habit.created_at or _now()),
                    _iso(_now()),
                ),
            )

    def _habit_from_row(self, r: sqlite3.Row) -> Habit:
        return habit_from_document(
            {
                "habit_id": r["id"],
                "user_id": r["user_id"],
                "name": r["name"],
                "category": r["category"],
                "description": r["description"],
                "is_active": bool(r["is_active"]),
                "reminder": json.loads(r["reminder"]),
                "stats": json.loads(r["stats"]),
                "collaborators": json.loads(r["collaborators"]) if r["collaborators"] else [],
                "created_at": r["created_at"],
                "updated_at": r["updated_at"],
            }
        )

    def get_habit(self, habit_id: str) -> Habit | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habits WHERE id=?", (habit_id,))
            r = cur.fetchone()
        if not r:
            return None
        return self._habit_from_row(r)

    def get_habits(self, user_id: str | None = None) -> List[Habit]:
        q = "SELECT * FROM habits"
        params: tuple[Any, ...] = ()
        if user_id:
            q += " WHERE user_id=?"
            params = (user_id,)
        with self._cursor() as cur:
            cur.execute(q + " ORDER BY id", params)
            rows = cur.fetchall()
        return [self._habit_from_row(r) for r in rows]

    def load_reminder_habits(self) -> List[Habit]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habits WHERE is_active=1 AND reminder_enabled=1 ORDER BY id")
            rows = cur.fetchall()
        return [self._habit_from_row(r) for r in rows]

    def count_reminder_habits(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM habits WHERE is_active=1 AND reminder_enabled=1")
            return cur.fetchone()[0]

    def habits_with_streak(self, streaks: Iterable[int]) -> List[Habit]:
        wanted = set(streaks)
        return [
            h for h in self.get_habits()
            if h.is_active and h.stats.current_streak in wanted
        ]

    def disable_reminder(self, habit_id: str):
        with self._lock:
            habit = self.get_habit(habit_id)
            if habit is None:
                return
            habit.reminder.enabled = False
            self.upsert_habit(habit)

    def update_habit_stats(self, habit_id: str, stats: HabitStats):
        with self._cursor() as cur:
            cur.execute(
                "UPDATE habits SET stats=?, updated_at=? WHERE id=?",
                (json.dumps(asdict(stats)), _iso(_now()), habit_id),
            )

    def delete_habit(self, habit_id: str):
        with self._cursor() as cur:
            cur.execute("DELETE FROM habit_completions WHERE habit_id=?", (habit_id,))
            cur.execute("DELETE FROM habit_reminders WHERE habit_id=?", (habit_id,))
            cur.execute("DELETE FROM habit_milestones WHERE habit_id=?", (habit_id,))
            cur.execute("DELETE FROM habits WHERE id=?", (habit_id,))

    # --- Completions ---
    def upsert_completion(self, event: CompletionEvent) -> CompletionEvent:
        """Insert the day's completion or bump the existing one in place."""
        now = _now()
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO habit_completions (habit_id, user_id, day, completed, count, mood, productivity, note, minutes_spent, completed_at, created_at, updated_at)
                VALUES (?,?,?,?,1,?,?,?,?,?,?,?)
                ON CONFLICT(habit_id, user_id, day) DO UPDATE SET completed=excluded.completed, count=count+1, mood=excluded.mood, productivity=excluded.productivity, note=excluded.note, minutes_spent=excluded.minutes_spent, completed_at=excluded.completed_at, updated_at=excluded.updated_at
                """,
                (
                    event.habit_id,
                    event.user_id,
                    event.day.isoformat(),
                    1 if event.completed else 0,
                    event.mood,
                    event.productivity,
                    event.note,
                    event.minutes_spent,
                    _iso(event.completed_at or now),
                    _iso(now),
                    _iso(now),
                ),
            )
            cur.execute(
                "SELECT * FROM habit_completions WHERE habit_id=? AND user_id=? AND day=?",
                (event.habit_id, event.user_id, event.day.isoformat()),
            )
            r = cur.fetchone()
        return self._completion_from_row(r)

    def _completion_from_row(self, r: sqlite3.Row) -> CompletionEvent:
        return CompletionEvent(
            habit_id=r["habit_id"],
            user_id=r["user_id"],
            day=parse_day(r["day"]),
            completed=bool(r["completed"]),
            count=r["count"],
            mood=r["mood"],
            productivity=r["productivity"],
            note=r["note"] or "",
            minutes_spent=r["minutes_spent"] or 0,
            completed_at=parse_datetime(r["completed_at"]),
            created_at=parse_datetime(r["created_at"]),
        )

    def completions_for_habit(self, habit_id: str, user_id: str | None = None, since: date | None = None) -> List[CompletionEvent]:
        q = "SELECT * FROM habit_completions WHERE habit_id=?"
        params: list[Any] = [habit_id]
        if user_id:
            q += " AND user_id=?"
            params.append(user_id)
        if since:
            q += " AND day >= ?"
            params.append(since.isoformat())
        with self._cursor() as cur:
            cur.execute(q + " ORDER BY day", params)
            rows = cur.fetchall()
        return [self._completion_from_row(r) for r in rows]

    def completions_for_user(self, user_id: str, since: date | None = None) -> List[CompletionEvent]:
        q = "SELECT * FROM habit_completions WHERE user_id=?"
        params: list[Any] = [user_id]
        if since:
            q += " AND day >= ?"
            params.append(since.isoformat())
        with self._cursor() as cur:
            cur.execute(q + " ORDER BY day", params)
            rows = cur.fetchall()
        return [self._completion_from_row(r) for r in rows]

    # --- Reminder ledger ---
    def ledger_entry_exists(self, habit_id: str, day: date) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM habit_reminders WHERE habit_id=? AND day=?",
                (habit_id, day.isoformat()),
            )
            return cur.fetchone() is not None

    def insert_ledger_entry(self, entry: LedgerEntry):
        """Plain INSERT: a second entry for the same habit/day is rejected, never replaced."""
        try:
            with self._cursor() as cur:
                cur.execute(
                    "INSERT INTO habit_reminders (habit_id, user_id, day, channel, email, time_window, hour, tick_id, sent_at) VALUES (?,?,?,?,?,?,?,?,?)",
                    (
                        entry.habit_id,
                        entry.user_id,
                        entry.day.isoformat(),
                        entry.channel,
                        entry.email,
                        entry.time_window,
                        entry.hour,
                        entry.tick_id,
                        _iso(entry.sent_at or _now()),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateLedgerEntryError((entry.habit_id, entry.day.isoformat())) from exc

    def _ledger_from_row(self, r: sqlite3.Row) -> LedgerEntry:
        return LedgerEntry(
            habit_id=r["habit_id"],
            user_id=r["user_id"],
            day=parse_day(r["day"]),
            channel=r["channel"],
            sent_at=parse_datetime(r["sent_at"]),
            email=r["email"] or "",
            time_window=r["time_window"] or "",
            hour=r["hour"],
            tick_id=r["tick_id"] or "",
        )

    def recent_ledger_entries(self, limit: int = 10) -> List[LedgerEntry]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habit_reminders ORDER BY sent_at DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        return [self._ledger_from_row(r) for r in rows]

    def count_ledger_entries(self, day: date) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM habit_reminders WHERE day=?", (day.isoformat(),))
            return cur.fetchone()[0]

    # --- Milestones ---
    def milestone_recorded(self, habit_id: str, milestone_key: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM habit_milestones WHERE habit_id=? AND milestone_key=?",
                (habit_id, milestone_key),
            )
            return cur.fetchone() is not None

    def insert_milestone(self, habit_id: str, user_id: str, milestone_key: str, streak: int):
        try:
            with self._cursor() as cur:
                cur.execute(
                    "INSERT INTO habit_milestones (habit_id, user_id, milestone_key, streak, celebrated_at) VALUES (?,?,?,?,?)",
                    (habit_id, user_id, milestone_key, streak, _iso(_now())),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateLedgerEntryError((habit_id, milestone_key)) from exc
        logger.debug(f"Milestone {milestone_key} recorded for habit {habit_id}")
