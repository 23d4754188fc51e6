import json

import pytest

from config.config_loader import create_default_config, load_config
from config.settings import load_cron_config, load_scheduler_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "HABITS_HOST",
        "HABITS_PORT",
        "HABITS_DB_PATH",
        "HABITS_TIMEZONE",
        "HABITS_SCHEDULER_ENABLED",
        "HABITS_BATCH_SIZE",
        "FRONTEND_URL",
        "CRON_SECRET",
    ):
        monkeypatch.delenv(key, raising=False)


def test_missing_file_creates_default(tmp_path, monkeypatch):
    monkeypatch.setenv("HABITS_CONFIG_PATH", str(tmp_path))
    config = load_config("habits_config.json")
    assert config["scheduler"]["batch_size"] == 5
    assert (tmp_path / "habits_config.json").exists()


def test_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps(create_default_config()), encoding="utf-8")
    monkeypatch.setenv("HABITS_CONFIG_PATH", str(path))
    monkeypatch.setenv("HABITS_PORT", "9100")
    monkeypatch.setenv("HABITS_DB_PATH", "/tmp/h.db")
    monkeypatch.setenv("HABITS_TIMEZONE", "Europe/Warsaw")
    monkeypatch.setenv("HABITS_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("HABITS_BATCH_SIZE", "3")
    monkeypatch.setenv("FRONTEND_URL", "https://habits.example.com")

    config = load_config("ignored.json")
    assert config["server"]["port"] == 9100
    assert config["database"]["path"] == "/tmp/h.db"
    assert config["scheduler"]["timezone"] == "Europe/Warsaw"
    assert config["scheduler"]["enabled"] is False
    assert config["scheduler"]["batch_size"] == 3
    assert config["app"]["frontend_url"] == "https://habits.example.com"


def test_broken_file_falls_back_to_defaults(tmp_path, monkeypatch):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("HABITS_CONFIG_PATH", str(path))
    assert load_config()["cron"]["secret_env"] == "CRON_SECRET"


def test_scheduler_config_validation():
    cfg = load_scheduler_config({"timezone": "Mars/Olympus", "batch_size": 2})
    assert cfg.timezone == "UTC"
    assert cfg.batch_size == 2
    with pytest.raises(ValueError):
        load_scheduler_config({"batch_size": 0})
    with pytest.raises(ValueError):
        load_scheduler_config({"milestone_hour": 24})


def test_cron_secret_from_env(monkeypatch):
    cfg = load_cron_config({})
    assert cfg.resolve_secret() is None
    monkeypatch.setenv("CRON_SECRET", " s3cret ")
    assert cfg.resolve_secret() == "s3cret"
    monkeypatch.setenv("OTHER_SECRET", "x")
    assert load_cron_config({"secret_env": "OTHER_SECRET"}).resolve_secret() == "x"
    assert load_cron_config({"secret": "inline"}).resolve_secret() == "inline"
