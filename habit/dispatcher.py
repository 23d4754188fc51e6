from __future__ import annotations
import asyncio
import time
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Protocol

from loguru import logger

from .errors import HabitNotFoundError, InvalidWindowError, StorageError, UserNotFoundError
from .ledger import ReminderLedger
from .models import Habit, TickReport, UserContact
from .storage import HabitStorage
from .templates import DEFAULT_FRONTEND_URL, MessageContent, render_reminder
from .windows import is_due, time_window_for_hour

DEFAULT_BATCH_SIZE = 5
DEFAULT_FAILURE_SAMPLE = 5


class MessageSender(Protocol):
    async def send(self, address: str, content: MessageContent) -> bool: ...


class ReminderDispatcher:
    """Runs one reminder tick: match, dedup, resolve owners, send in batches."""

    def __init__(
        self,
        storage: HabitStorage,
        sender: MessageSender,
        *,
        ledger: ReminderLedger | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        empty_windows_due: bool = True,
        failure_sample_size: int = DEFAULT_FAILURE_SAMPLE,
        channel: str = "email",
        frontend_url: str = DEFAULT_FRONTEND_URL,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.storage = storage
        self.sender = sender
        self.ledger = ledger or ReminderLedger(storage)
        self.batch_size = batch_size
        self.empty_windows_due = empty_windows_due
        self.failure_sample_size = failure_sample_size
        self.channel = channel
        self.frontend_url = frontend_url
        self._in_flight: set[tuple[str, date]] = set()

    def _record_failure(self, report: TickReport, message: str):
        if len(report.failures) < self.failure_sample_size:
            report.failures.append(message)

    async def run_tick(self, now: datetime | None = None) -> TickReport:
        """Evaluate every reminder-enabled habit for ``now``.

        Only storage failures while loading habits or owners propagate
        (as StorageError). Everything per habit ends up in the report.
        """
        now = now or datetime.now(timezone.utc)
        started = time.perf_counter()
        day = now.date()
        report = TickReport(
            tick_id=uuid.uuid4().hex[:8],
            started_at=now,
            day=day,
            time_window=time_window_for_hour(now.hour),
        )
        logger.info(f"[{report.tick_id}] Tick at {now.isoformat()} ({report.time_window})")

        habits = await asyncio.to_thread(self.storage.load_reminder_habits)
        report.habits_loaded = len(habits)

        eligible = self._filter_due(habits, now, report)
        report.eligible = len(eligible)

        pending: List[Habit] = []
        for habit in eligible:
            if (habit.habit_id, day) in self._in_flight:
                report.deduped += 1
                continue
            if await asyncio.to_thread(self.ledger.already_sent, habit.habit_id, day):
                report.deduped += 1
                continue
            pending.append(habit)

        if pending:
            users = await asyncio.to_thread(self.storage.resolve_users, {h.user_id for h in pending})
            report.users_resolved = len(users)
            for start in range(0, len(pending), self.batch_size):
                batch = pending[start:start + self.batch_size]
                report.batches += 1
                results = await asyncio.gather(
                    *(self._dispatch_one(h, users, now, report) for h in batch),
                    return_exceptions=True,
                )
                for habit, result in zip(batch, results):
                    if isinstance(result, Exception):
                        report.failed += 1
                        self._record_failure(report, f"Habit {habit.habit_id}: {type(result).__name__}: {result}")
                        logger.opt(exception=result).error(f"[{report.tick_id}] Unexpected error for habit {habit.habit_id}")

        report.execution_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"[{report.tick_id}] Tick done: eligible={report.eligible} deduped={report.deduped} "
            f"sent={report.sent} duplicates={report.duplicates} failed={report.failed} orphaned={report.orphaned} in {report.execution_ms}ms"
        )
        return report

    def _filter_due(self, habits: List[Habit], now: datetime, report: TickReport) -> List[Habit]:
        due = []
        for habit in habits:
            try:
                if is_due(habit, now.hour, now.weekday(), empty_windows_due=self.empty_windows_due):
                    due.append(habit)
            except (InvalidWindowError, ValueError) as exc:
                report.misconfigured += 1
                self._record_failure(report, f"Habit {habit.habit_id}: {exc}")
                logger.warning(f"[{report.tick_id}] Skipping habit {habit.habit_id}: {exc}")
        return due

    async def _dispatch_one(self, habit: Habit, users: Dict[str, UserContact], now: datetime, report: TickReport):
        key = (habit.habit_id, now.date())
        if key in self._in_flight:
            report.deduped += 1
            return
        self._in_flight.add(key)
        try:
            if await asyncio.to_thread(self.ledger.already_sent, habit.habit_id, key[1]):
                report.deduped += 1
                return
            user = users.get(habit.user_id)
            if user is None:
                await self._handle_orphan(habit, report)
                return
            if not user.email:
                report.skipped += 1
                logger.info(f"[{report.tick_id}] No email for user {habit.user_id}; habit {habit.habit_id} skipped")
                return

            content = render_reminder(habit, user, now, self.frontend_url)
            try:
                delivered = await self.sender.send(user.email, content)
            except Exception as exc:
                logger.exception(f"[{report.tick_id}] Send failed for habit {habit.habit_id}")
                report.failed += 1
                self._record_failure(report, f"Habit {habit.habit_id}: {type(exc).__name__}: {exc}")
                return
            if not delivered:
                report.failed += 1
                self._record_failure(report, f"Habit {habit.habit_id}: transport reported failure")
                return

            try:
                marked = await asyncio.to_thread(
                    self.ledger.mark_sent,
                    habit.habit_id,
                    habit.user_id,
                    now.date(),
                    self.channel,
                    email=user.email,
                    time_window=report.time_window,
                    hour=now.hour,
                    tick_id=report.tick_id,
                )
            except StorageError as exc:
                # mail already went out; a later tick may send it again
                report.sent += 1
                report.ledger_errors += 1
                self._record_failure(report, f"Habit {habit.habit_id}: ledger write failed: {exc}")
                logger.error(f"[{report.tick_id}] Sent habit {habit.habit_id} but ledger write failed: {exc}")
            else:
                if not marked:
                    report.duplicates += 1
                    self._record_failure(report, f"Habit {habit.habit_id}: already marked for {key[1].isoformat()} by another tick")
                    logger.warning(f"[{report.tick_id}] Duplicate reminder for habit {habit.habit_id}; another tick marked it first")
                    return
                report.sent += 1
                logger.info(f"[{report.tick_id}] Reminder sent for habit {habit.name} to {user.email}")
        finally:
            self._in_flight.discard(key)

    async def _handle_orphan(self, habit: Habit, report: TickReport):
        report.orphaned += 1
        logger.warning(
            f"[{report.tick_id}] Owner {habit.user_id} of habit {habit.habit_id} no longer exists; disabling reminders"
        )
        try:
            await asyncio.to_thread(self.storage.disable_reminder, habit.habit_id)
        except StorageError as exc:
            self._record_failure(report, f"Habit {habit.habit_id}: could not disable orphaned reminder: {exc}")
            logger.error(f"[{report.tick_id}] Could not disable reminder for {habit.habit_id}: {exc}")

    async def send_test_reminder(self, habit_id: str, email: str, now: datetime | None = None) -> bool:
        """Send one reminder to a named user. The ledger is left untouched."""
        now = now or datetime.now(timezone.utc)
        habit = await asyncio.to_thread(self.storage.get_habit, habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        user = await asyncio.to_thread(self.storage.get_user_by_email, email)
        if user is None:
            raise UserNotFoundError(email)
        contact = UserContact(user_id=user.user_id, email=user.email, display_name=user.display_name)
        delivered = await self.sender.send(user.email, render_reminder(habit, contact, now, self.frontend_url))
        logger.info(f"Test reminder for habit {habit_id} to {email}: {'sent' if delivered else 'failed'}")
        return bool(delivered)
