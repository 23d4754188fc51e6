import pytest
from fastapi import HTTPException

from auth.security import CronAuthenticator, mask_email
from config.settings import CronConfig


def test_extract_token_prefers_bearer_header():
    assert CronAuthenticator.extract_token("Bearer abc", "query") == "abc"
    assert CronAuthenticator.extract_token("bearer  abc ", None) == "abc"
    assert CronAuthenticator.extract_token("Basic abc", "query") == "query"
    assert CronAuthenticator.extract_token(None, None) is None


def test_verify(monkeypatch):
    monkeypatch.delenv("CRON_SECRET", raising=False)
    auth = CronAuthenticator(CronConfig(secret="s3cret"))
    assert auth.is_authorized("s3cret")
    assert not auth.is_authorized("wrong")
    assert not auth.is_authorized(None)
    with pytest.raises(HTTPException) as exc:
        auth.verify("wrong")
    assert exc.value.status_code == 401


def test_unconfigured_secret_rejects_everything(monkeypatch):
    monkeypatch.delenv("CRON_SECRET", raising=False)
    auth = CronAuthenticator(CronConfig())
    assert not auth.configured
    assert not auth.is_authorized("")
    assert not auth.is_authorized("anything")


def test_mask_email():
    assert mask_email("jane.doe@example.com") == "ja***@example.com"
    assert mask_email("") == "***"
