"""Email transport for rendered sourcing request reports."""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Mapping, MutableMapping, Optional

from utils.logger import setup_logger


class SMTPConfigurationError(ValueError):
    """Raised when the email configuration is incomplete."""


class EmailNotificationService:
    """Send rendered HTML reports to a single destination address per call."""

    def __init__(
        self,
        config: Mapping[str, object],
        *,
        logger=None,
        smtp_class=smtplib.SMTP,
        smtp_ssl_class=smtplib.SMTP_SSL,
    ) -> None:
        email_cfg: MutableMapping[str, object] = dict(config.get("email", {}))

        self.smtp_server: str = str(email_cfg.get("smtp_server", "") or "").strip()
        self.smtp_port: int = int(email_cfg.get("smtp_port", 0) or 0)
        self.sender_email: str = str(email_cfg.get("sender_email", "") or "").strip()
        self.sender_password: str = str(email_cfg.get("sender_password", "") or "").strip()
        self.smtp_timeout: int = int(email_cfg.get("timeout", 30) or 30)

        self.logger = logger or setup_logger(self.__class__.__name__)
        self.smtp_class = smtp_class
        self.smtp_ssl_class = smtp_ssl_class

        self._validate_config()

    def _validate_config(self) -> None:
        missing = []
        if not self.smtp_server:
            missing.append("email.smtp_server")
        if not self.smtp_port:
            missing.append("email.smtp_port")
        if not self.sender_email:
            missing.append("email.sender_email")
        if not self.sender_password:
            missing.append("email.sender_password")
        if missing:
            raise SMTPConfigurationError(
                f"Email configuration missing required field(s): {', '.join(missing)}"
            )
        self.logger.info("Email configuration validated for %s.", self.smtp_server)

    def send_report(self, destination: str, subject: str, html_body: str) -> bool:
        """Send one rendered report; returns False when delivery failed."""
        destination = (destination or "").strip()
        if not destination:
            self.logger.error("Cannot send report '%s' without a destination address.", subject)
            return False

        message = self._build_message(destination, subject, html_body)
        try:
            self._send_email(message)
        except Exception as exc:
            self.logger.error("Failed to send report to %s: %s", destination, exc, exc_info=True)
            return False
        self.logger.info("Report '%s' sent to %s via %s.", subject, destination, self.smtp_server)
        return True

    def _build_message(self, destination: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender_email
        msg["To"] = destination
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _send_email(self, msg: MIMEMultipart) -> None:
        smtp_cls = self.smtp_ssl_class if self.smtp_port == 465 else self.smtp_class

        with smtp_cls(self.smtp_server, self.smtp_port, timeout=self.smtp_timeout) as server:
            server.ehlo()
            if self.smtp_port == 587:
                server.starttls()
                server.ehlo()
            server.login(self.sender_email, self.sender_password)
            server.send_message(msg)


def build_notifier(config: Mapping[str, object], *, logger=None) -> Optional[EmailNotificationService]:
    """Return a configured notifier, or None when email is not set up."""
    try:
        return EmailNotificationService(config, logger=logger)
    except SMTPConfigurationError as exc:
        if logger:
            logger.warning("Email reports disabled: %s", exc)
        return None
