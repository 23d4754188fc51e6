from __future__ import annotations


class HabitError(Exception):
    """Base class for habit service errors."""


class InvalidWindowError(HabitError, ValueError):
    """A reminder window tag could not be parsed."""

    def __init__(self, tag: str, reason: str = "unknown window"):
        self.tag = tag
        self.reason = reason
        super().__init__(f"Invalid reminder window {tag!r}: {reason}")


class InvalidHabitDocumentError(HabitError, ValueError):
    """A stored or imported document cannot be turned into a typed record."""


class InvalidCompletionError(HabitError, ValueError):
    """Completion payload failed validation."""


class HabitNotFoundError(HabitError, LookupError):
    def __init__(self, habit_id: str):
        self.habit_id = habit_id
        super().__init__(f"Habit {habit_id} not found")


class UserNotFoundError(HabitError, LookupError):
    def __init__(self, user_ref: str):
        self.user_ref = user_ref
        super().__init__(f"User {user_ref} not found")


class StorageError(HabitError):
    """Backing store unreachable or a query failed."""


class DuplicateLedgerEntryError(HabitError):
    """Unique key already present (reminder ledger or milestone log)."""

    def __init__(self, key: tuple[str, ...]):
        self.key = key
        super().__init__(f"Duplicate entry for key {key}")
