"""
SMTP mailer.

smtplib is blocking, so each send runs in a worker thread.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, Optional, Sequence

from assessment_platform.config import Settings, get_settings
from assessment_platform.engines.notifications.templates import render
from assessment_platform.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    maintype: str = "application"
    subtype: str = "pdf"


class Mailer:
    """Renders a template and delivers it over SMTP."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def send(
        self,
        recipient: str,
        template_key: str,
        context: Dict[str, Any],
        attachments: Sequence[Attachment] = (),
    ) -> bool:
        """
        Send one email.

        Returns False without sending when email is disabled. SMTP failures
        propagate to the caller.
        """
        rendered = render(template_key, context, self.settings.smtp_from_name)
        if not self.settings.email_enabled:
            logger.info(
                "Email disabled, not sending",
                extra={"template_key": template_key, "recipient": recipient},
            )
            return False

        message = EmailMessage()
        message["Subject"] = rendered.subject
        message["From"] = formataddr((self.settings.smtp_from_name, self.settings.smtp_from_email))
        message["To"] = recipient
        message.set_content(rendered.text)
        message.add_alternative(rendered.html, subtype="html")
        for attachment in attachments:
            message.add_attachment(
                attachment.content,
                maintype=attachment.maintype,
                subtype=attachment.subtype,
                filename=attachment.filename,
            )

        await asyncio.to_thread(self._deliver, message)
        logger.info("Email sent", extra={"template_key": template_key, "recipient": recipient})
        return True

    def _deliver(self, message: EmailMessage) -> None:
        settings = self.settings
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
