"""
Shared-secret authentication for the cron trigger endpoints.
"""

import secrets
from typing import Optional

from fastapi import HTTPException, status
from loguru import logger

from config.settings import CronConfig


class CronAuthenticator:
    """Checks the shared secret an external scheduler presents."""

    def __init__(self, config: CronConfig):
        self.config = config

    @property
    def configured(self) -> bool:
        return self.config.resolve_secret() is not None

    @staticmethod
    def extract_token(authorization: Optional[str] = None, query_token: Optional[str] = None) -> Optional[str]:
        """Take the token from ``Authorization: Bearer <token>`` or the ``token`` query parameter."""
        if authorization:
            scheme, _, value = authorization.strip().partition(" ")
            if scheme.lower() == "bearer" and value.strip():
                return value.strip()
        if query_token and query_token.strip():
            return query_token.strip()
        return None

    def is_authorized(self, token: Optional[str]) -> bool:
        expected = self.config.resolve_secret()
        if expected is None:
            logger.warning("Cron secret is not configured; rejecting trigger request")
            return False
        if not token:
            return False
        return secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))

    def verify(self, token: Optional[str]) -> None:
        """Raise 401 unless ``token`` matches the configured secret."""
        if not self.is_authorized(token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )


def mask_email(email: str) -> str:
    """``jane.doe@example.com`` -> ``ja***@example.com``."""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"
