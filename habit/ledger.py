from __future__ import annotations
from datetime import date, datetime, timezone
from typing import List

from loguru import logger

from .errors import DuplicateLedgerEntryError
from .models import LedgerEntry
from .storage import HabitStorage


class ReminderLedger:
    """One delivery marker per (habit, calendar day).

    Check with ``already_sent`` before sending, write with ``mark_sent`` only
    after the send was confirmed. The store's unique key is what stops
    overlapping ticks from sending twice.
    """

    def __init__(self, storage: HabitStorage):
        self.storage = storage

    def already_sent(self, habit_id: str, day: date) -> bool:
        return self.storage.ledger_entry_exists(habit_id, day)

    def mark_sent(
        self,
        habit_id: str,
        user_id: str,
        day: date,
        channel: str = "email",
        *,
        email: str = "",
        time_window: str = "",
        hour: int | None = None,
        tick_id: str = "",
        sent_at: datetime | None = None,
    ) -> bool:
        """Record the delivery. Returns False when the day was already marked."""
        entry = LedgerEntry(
            habit_id=habit_id,
            user_id=user_id,
            day=day,
            channel=channel,
            sent_at=sent_at or datetime.now(timezone.utc),
            email=email,
            time_window=time_window,
            hour=hour,
            tick_id=tick_id,
        )
        try:
            self.storage.insert_ledger_entry(entry)
        except DuplicateLedgerEntryError:
            logger.warning(f"Ledger already has {habit_id} for {day.isoformat()}; keeping the first entry")
            return False
        return True

    def recent(self, limit: int = 10) -> List[LedgerEntry]:
        return self.storage.recent_ledger_entries(limit)

    def count_for_day(self, day: date) -> int:
        return self.storage.count_ledger_entries(day)
