"""Email transport."""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ghostwatch.errors import ActionDispatchError

from ..base import ActionMessage, Transport

logger = logging.getLogger(__name__)


class EmailTransport(Transport):
    """Send rule matches via SMTP email."""

    def __init__(
        self,
        smtp_host: str | None,
        smtp_port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_addr: str = "ghostwatch@localhost",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        """Initialize email transport.

        Args:
            smtp_host: SMTP server hostname (None disables email)
            smtp_port: SMTP server port (default 587 for TLS)
            username: SMTP username (optional)
            password: SMTP password (optional)
            from_addr: From email address
            use_tls: Whether to use STARTTLS (default True)
            timeout: Socket timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_addr = from_addr
        self.use_tls = use_tls
        self.timeout = timeout

    def name(self) -> str:
        return "email"

    def build_message(self, message: ActionMessage, recipients: list[str]) -> MIMEMultipart:
        subject = message.config.get("subject") or f"[Ghostwatch] {message.rule_name or 'Rule matched'}"
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(self._format_text(message), "plain"))
        return msg

    def _format_text(self, message: ActionMessage) -> str:
        lines = [
            message.message,
            "",
            f"Rule: {message.rule_name or message.rule_id}",
            f"Time: {message.timestamp.isoformat()}",
            "",
            "Record:",
        ]
        for key, value in message.record.items():
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)

    def send(self, message: ActionMessage) -> None:
        recipients = message.config.get("recipients") or []
        if isinstance(recipients, str):
            recipients = [r.strip() for r in recipients.split(",") if r.strip()]
        if not recipients:
            raise ActionDispatchError("EMAIL action has no recipients", action_type="EMAIL")
        if not self.smtp_host:
            raise ActionDispatchError("SMTP host is not configured", action_type="EMAIL")

        msg = self.build_message(message, recipients)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.from_addr, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise ActionDispatchError(f"Email send failed: {e}", action_type="EMAIL") from e
