from __future__ import annotations
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import (
    CompletionConfig,
    CronConfig,
    SchedulerConfig,
    load_completion_config,
    load_cron_config,
    load_scheduler_config,
)
from core.app_paths import resolve_data_path

from .dispatcher import MessageSender, ReminderDispatcher
from .errors import InvalidHabitDocumentError
from .ledger import ReminderLedger
from .milestones import MilestoneNotifier
from .normalize import habit_from_document, user_from_document
from .recorder import CompletionRecorder
from .scheduler import HabitScheduler
from .storage import HabitStorage
from .templates import DEFAULT_FRONTEND_URL
from .windows import validate_windows

EXPORT_VERSION = 1


@dataclass
class ImportSummary:
    users: int = 0
    habits: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HabitServices:
    """Everything the HTTP layer and the scheduler share, built once at startup."""

    storage: HabitStorage
    ledger: ReminderLedger
    dispatcher: ReminderDispatcher
    recorder: CompletionRecorder
    milestones: MilestoneNotifier
    scheduler: HabitScheduler
    scheduler_config: SchedulerConfig
    completion_config: CompletionConfig
    cron_config: CronConfig
    frontend_url: str = DEFAULT_FRONTEND_URL

    def close(self):
        self.storage.close()

    # --- State export/import ---
    def export_state(self) -> dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "users": [u.to_dict() for u in self.storage.get_users()],
            "habits": [h.to_dict() for h in self.storage.get_habits()],
        }

    def import_state(self, payload: dict[str, Any], merge: bool = True) -> ImportSummary:
        """Load users and habits from an export or from legacy documents.

        With ``merge`` off, records that already exist are left alone.
        Documents that cannot be normalized are counted and reported, the
        rest of the payload still imports.
        """
        version = payload.get("version", EXPORT_VERSION)
        if version != EXPORT_VERSION:
            raise ValueError(f"Unsupported export version: {version}")
        summary = ImportSummary()

        existing_users = {u.user_id for u in self.storage.get_users()}
        for doc in payload.get("users", []) or []:
            try:
                user = user_from_document(doc)
            except InvalidHabitDocumentError as exc:
                summary.errors.append(str(exc))
                continue
            if not merge and user.user_id in existing_users:
                summary.skipped += 1
                continue
            self.storage.upsert_user(user)
            summary.users += 1

        existing_habits = {h.habit_id for h in self.storage.get_habits()}
        for doc in payload.get("habits", []) or []:
            try:
                habit = habit_from_document(doc)
                validate_windows([*habit.reminder.windows, *habit.reminder.times])
            except (InvalidHabitDocumentError, ValueError) as exc:
                summary.errors.append(str(exc))
                continue
            if not merge and habit.habit_id in existing_habits:
                summary.skipped += 1
                continue
            self.storage.upsert_habit(habit)
            summary.habits += 1

        logger.info(
            f"Imported {summary.users} users and {summary.habits} habits "
            f"(skipped={summary.skipped}, errors={len(summary.errors)})"
        )
        return summary


def _resolve_db_path(raw: str | None) -> Path:
    path = Path(raw or "habits.db").expanduser()
    if path.is_absolute():
        return path
    return resolve_data_path(path, create_parents=True)


def build_services(
    config: dict[str, Any],
    sender: MessageSender,
    storage: HabitStorage | None = None,
) -> HabitServices:
    scheduler_config = load_scheduler_config(config.get("scheduler", {}) or {})
    completion_config = load_completion_config(config.get("completion", {}) or {})
    cron_config = load_cron_config(config.get("cron", {}) or {})
    frontend_url = (config.get("app", {}) or {}).get("frontend_url") or DEFAULT_FRONTEND_URL

    if storage is None:
        storage = HabitStorage(_resolve_db_path((config.get("database", {}) or {}).get("path")))
    ledger = ReminderLedger(storage)
    dispatcher = ReminderDispatcher(
        storage,
        sender,
        ledger=ledger,
        batch_size=scheduler_config.batch_size,
        empty_windows_due=scheduler_config.empty_windows_due,
        failure_sample_size=scheduler_config.failure_sample_size,
        frontend_url=frontend_url,
    )
    milestones = MilestoneNotifier(
        storage,
        sender,
        failure_sample_size=scheduler_config.failure_sample_size,
        frontend_url=frontend_url,
    )
    scheduler = HabitScheduler(
        dispatcher,
        milestones,
        timezone=scheduler_config.timezone,
        enabled=scheduler_config.enabled,
        milestone_hour=scheduler_config.milestone_hour,
    )
    logger.info(f"Habit services ready (db={storage.db_path}, tz={scheduler_config.timezone})")
    return HabitServices(
        storage=storage,
        ledger=ledger,
        dispatcher=dispatcher,
        recorder=CompletionRecorder(
            storage,
            xp_per_completion=completion_config.xp_per_completion,
            timezone=scheduler_config.timezone,
        ),
        milestones=milestones,
        scheduler=scheduler,
        scheduler_config=scheduler_config,
        completion_config=completion_config,
        cron_config=cron_config,
        frontend_url=frontend_url,
    )
