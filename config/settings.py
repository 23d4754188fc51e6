"""Typed views over the raw configuration sections."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger


@dataclass(slots=True)
class SchedulerConfig:
    enabled: bool = True
    timezone: str = "UTC"
    batch_size: int = 5
    empty_windows_due: bool = True
    milestone_hour: int = 0
    failure_sample_size: int = 5


@dataclass(slots=True)
class CompletionConfig:
    xp_per_completion: int = 10


@dataclass(slots=True)
class CronConfig:
    """Shared secret for the trigger endpoints."""

    secret: Optional[str] = None
    secret_env: str = "CRON_SECRET"

    def resolve_secret(self) -> Optional[str]:
        if self.secret:
            return self.secret.strip()
        env_value = os.getenv(self.secret_env or "CRON_SECRET")
        if env_value and env_value.strip():
            return env_value.strip()
        return None


def load_scheduler_config(raw: dict[str, Any]) -> SchedulerConfig:
    timezone = str(raw.get("timezone") or "UTC").strip() or "UTC"
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown scheduler timezone {timezone!r}, using UTC")
        timezone = "UTC"

    batch_size = int(raw.get("batch_size", 5))
    if batch_size < 1:
        raise ValueError("scheduler.batch_size must be at least 1")
    milestone_hour = int(raw.get("milestone_hour", 0))
    if not 0 <= milestone_hour <= 23:
        raise ValueError("scheduler.milestone_hour must be between 0 and 23")

    return SchedulerConfig(
        enabled=bool(raw.get("enabled", True)),
        timezone=timezone,
        batch_size=batch_size,
        empty_windows_due=bool(raw.get("empty_windows_due", True)),
        milestone_hour=milestone_hour,
        failure_sample_size=max(0, int(raw.get("failure_sample_size", 5))),
    )


def load_completion_config(raw: dict[str, Any]) -> CompletionConfig:
    return CompletionConfig(xp_per_completion=max(0, int(raw.get("xp_per_completion", 10))))


def load_cron_config(raw: dict[str, Any]) -> CronConfig:
    secret = raw.get("secret")
    return CronConfig(
        secret=secret.strip() if isinstance(secret, str) and secret.strip() else None,
        secret_env=str(raw.get("secret_env") or "CRON_SECRET"),
    )
