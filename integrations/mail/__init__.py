"""Mail integration package."""

from .service import LoggingMailSender, MailConfig, SmtpMailSender, build_sender, load_mail_config

__all__ = ["LoggingMailSender", "MailConfig", "SmtpMailSender", "build_sender", "load_mail_config"]
