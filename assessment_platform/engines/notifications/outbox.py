"""
Outbox writer: queues a templated email inside the caller's transaction.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.kernel.models.notification import NotificationOutbox, OutboxStatus


class TemplateKey:
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    CERTIFICATE_ISSUED = "certificate_issued"

    ALL = frozenset({EMAIL_VERIFICATION, PASSWORD_RESET, CERTIFICATE_ISSUED})


class Outbox:
    """Adds NotificationOutbox rows on a session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(
        self,
        template_key: str,
        recipient: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> NotificationOutbox:
        if template_key not in TemplateKey.ALL:
            raise ValueError(f"Unknown notification template: {template_key}")
        entry = NotificationOutbox(
            template_key=template_key,
            recipient=recipient,
            payload=payload or {},
            status=OutboxStatus.PENDING,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

