"""SMTP delivery for reminder and milestone emails."""

from __future__ import annotations

import asyncio
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Optional

from loguru import logger

from habit.templates import MessageContent


@dataclass(slots=True)
class MailConfig:
    """Configuration holder for the SMTP sender."""

    enabled: bool = False
    host: Optional[str] = None
    host_env: str = "SMTP_HOST"
    port: int = 587
    username_env: str = "SMTP_USER"
    password_env: str = "SMTP_PASSWORD"
    from_address: str = ""
    from_name: str = "Habit Tracker"
    starttls: bool = True
    timeout: float = 30.0

    def resolve_host(self) -> Optional[str]:
        if self.host:
            return self.host.strip()
        env_value = os.getenv(self.host_env or "SMTP_HOST")
        return env_value.strip() if env_value else None

    def resolve_credentials(self) -> tuple[Optional[str], Optional[str]]:
        username = os.getenv(self.username_env or "SMTP_USER")
        password = os.getenv(self.password_env or "SMTP_PASSWORD")
        return (username or None, password or None)

    def sender_address(self) -> str:
        return self.from_address or (self.resolve_credentials()[0] or "")


def load_mail_config(raw: dict[str, Any]) -> MailConfig:
    """Create MailConfig from raw config dict."""

    host = raw.get("host")
    return MailConfig(
        enabled=bool(raw.get("enabled", False)),
        host=host.strip() if isinstance(host, str) and host.strip() else None,
        host_env=str(raw.get("host_env") or "SMTP_HOST"),
        port=int(raw.get("port", 587)),
        username_env=str(raw.get("username_env") or "SMTP_USER"),
        password_env=str(raw.get("password_env") or "SMTP_PASSWORD"),
        from_address=str(raw.get("from_address") or "").strip(),
        from_name=str(raw.get("from_name") or "Habit Tracker").strip(),
        starttls=bool(raw.get("starttls", True)),
        timeout=float(raw.get("timeout", 30)),
    )


class SmtpMailSender:
    """Sends one message per call over a fresh SMTP connection.

    ``send`` never raises for transport problems; it logs and returns False
    so a single bad address cannot sink a whole tick.
    """

    def __init__(self, config: MailConfig):
        self.config = config

    def build_message(self, address: str, content: MessageContent) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = content.subject
        msg["From"] = formataddr((self.config.from_name, self.config.sender_address()))
        msg["To"] = address
        msg.set_content(content.text)
        if content.html:
            msg.add_alternative(content.html, subtype="html")
        return msg

    def _send_sync(self, address: str, content: MessageContent):
        host = self.config.resolve_host()
        if not host:
            raise RuntimeError("SMTP host is not configured")
        username, password = self.config.resolve_credentials()
        msg = self.build_message(address, content)
        with smtplib.SMTP(host, self.config.port, timeout=self.config.timeout) as server:
            if self.config.starttls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)

    async def send(self, address: str, content: MessageContent) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, address, content)
        except (smtplib.SMTPException, OSError, RuntimeError) as exc:
            logger.warning(f"Email to {address} failed: {type(exc).__name__}: {exc}")
            return False
        logger.debug(f"Email '{content.subject}' sent to {address}")
        return True


class LoggingMailSender:
    """Stand-in used when mail is disabled: logs the message and reports success."""

    async def send(self, address: str, content: MessageContent) -> bool:
        logger.info(f"[mail disabled] Would send '{content.subject}' to {address}")
        return True


def build_sender(config: MailConfig):
    if config.enabled:
        if not config.resolve_host():
            logger.warning("Mail enabled but no SMTP host configured; messages will fail")
        return SmtpMailSender(config)
    logger.warning("Mail delivery disabled (dry run): reminders are logged and still marked as sent in the ledger")
    return LoggingMailSender()
