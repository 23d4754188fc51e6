"""config_loader.py Configuration loader for the habit reminder server."""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger


def _resolve_config_path(config_file: str) -> Path:
    """Resolve config path supporting env overrides and repo defaults."""

    env_override = os.getenv("HABITS_CONFIG_PATH")
    if env_override:
        env_path = Path(env_override).expanduser()
        if env_path.is_dir():
            return env_path / config_file
        return env_path

    path = Path(config_file)
    if path.exists() or path.is_absolute():
        return path

    package_dir = Path(__file__).resolve().parent
    candidate = package_dir / config_file
    if candidate.exists():
        return candidate

    root_candidate = package_dir.parent / config_file
    if root_candidate.exists():
        return root_candidate

    return candidate


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Overlay HABITS_* environment variables onto a loaded config."""
    env = os.environ
    if "HABITS_HOST" in env:
        config.setdefault("server", {})["host"] = env["HABITS_HOST"]
    if "HABITS_PORT" in env:
        config.setdefault("server", {})["port"] = int(env["HABITS_PORT"])
    if "HABITS_DB_PATH" in env:
        config.setdefault("database", {})["path"] = env["HABITS_DB_PATH"]
    if "HABITS_TIMEZONE" in env:
        config.setdefault("scheduler", {})["timezone"] = env["HABITS_TIMEZONE"]
    if "HABITS_SCHEDULER_ENABLED" in env:
        config.setdefault("scheduler", {})["enabled"] = _env_bool(env["HABITS_SCHEDULER_ENABLED"])
    if "HABITS_BATCH_SIZE" in env:
        config.setdefault("scheduler", {})["batch_size"] = int(env["HABITS_BATCH_SIZE"])
    if "FRONTEND_URL" in env:
        config.setdefault("app", {})["frontend_url"] = env["FRONTEND_URL"]
    return config


def load_config(config_file: str = "habits_config.json") -> dict[str, Any]:
    """Load the JSON configuration and apply environment overrides.

    A default file is written when none exists yet. A file that cannot be
    parsed falls back to the defaults so the server still starts.
    """
    config_path = _resolve_config_path(config_file)

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, creating default")
        config = create_default_config()
        save_config(config, config_file)
    else:
        try:
            with open(config_path, encoding="utf-8") as f:
                config = json.load(f)
            logger.info(f"Loaded configuration from {config_path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config {config_file}: {e}")
            config = create_default_config()

    return apply_env_overrides(config)


def save_config(config: dict[str, Any], config_file: str = "habits_config.json"):
    config_path = _resolve_config_path(config_file)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4, ensure_ascii=False)
        logger.info(f"Saved configuration to {config_path}")
    except OSError as e:
        logger.error(f"Error saving config {config_file}: {e}")


def create_default_config() -> dict[str, Any]:
    return {
        "server": {"host": "0.0.0.0", "port": 8000, "debug": False},
        "database": {"path": "habits.db"},
        "app": {"frontend_url": "http://localhost:5173"},
        "scheduler": {
            "enabled": True,
            "timezone": "UTC",
            "batch_size": 5,
            "empty_windows_due": True,
            "milestone_hour": 0,
            "failure_sample_size": 5,
        },
        "completion": {"xp_per_completion": 10},
        "cron": {"secret_env": "CRON_SECRET"},
        "mail": {
            "enabled": False,
            "host_env": "SMTP_HOST",
            "port": 587,
            "username_env": "SMTP_USER",
            "password_env": "SMTP_PASSWORD",
            "from_address": "",
            "from_name": "Habit Tracker",
            "starttls": True,
            "timeout": 30,
        },
        "logging": {"level": "INFO", "file": "logs/habits_{time:YYYY-MM-DD}.log"},
    }
