"""Email delivery and template rendering."""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from portal.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailError(Exception):
    """Email could not be delivered."""

    pass


@dataclass
class OutgoingEmail:
    """A message ready for delivery."""

    to: str
    subject: str
    text: str
    html: str | None = None


def render_template(template: str, variables: dict[str, str]) -> str:
    """Replace every ``{{name}}`` placeholder with its value."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value)
    return result


def text_to_html(text: str) -> str:
    return text.replace("\n", "<br>")


class EmailSender:
    """SMTP transport. Sends run in a worker thread."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.email_host and self.settings.email_from)

    async def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        """Deliver one message.

        Raises:
            EmailError: If SMTP is not configured or delivery fails
        """
        message = OutgoingEmail(to=to, subject=subject, text=text, html=html or text_to_html(text))
        if not self.configured:
            raise EmailError("Email is not configured (EMAIL_HOST and EMAIL_FROM are required)")
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"Failed to send email: {e}") from e
        logger.info(f"Email sent to {to}: {subject}")

    def _deliver(self, message: OutgoingEmail) -> None:
        msg = EmailMessage()
        msg["From"] = self.settings.email_from
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")

        with smtplib.SMTP(self.settings.email_host, self.settings.email_port, timeout=30) as smtp:
            if self.settings.email_use_tls:
                smtp.starttls()
            if self.settings.email_user and self.settings.email_password:
                smtp.login(self.settings.email_user, self.settings.email_password)
            smtp.send_message(msg)


_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    """FastAPI dependency returning the process-wide sender."""
    global _sender
    if _sender is None:
        _sender = EmailSender()
    return _sender
