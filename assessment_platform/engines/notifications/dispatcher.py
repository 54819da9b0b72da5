"""
Notification dispatcher: delivers committed outbox rows.

Runs after the request that queued the row has committed, in a FastAPI
background task or at startup, with its own database sessions.
"""

import asyncio
import uuid
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.engines.certificates.renderer import CertificateData, CertificateRenderer
from assessment_platform.engines.notifications.mailer import Attachment, Mailer
from assessment_platform.engines.notifications.outbox import TemplateKey
from assessment_platform.kernel.models.base import utcnow
from assessment_platform.kernel.models.notification import NotificationOutbox, OutboxStatus
from assessment_platform.logging_config import get_logger

logger = get_logger(__name__)

EMAIL_DISABLED = "Email delivery is disabled"
INTERRUPTED = "Interrupted before delivery completed"


class NotificationDispatcher:
    """
    At-most-once delivery of outbox rows.

    A row is claimed by moving it from ``pending`` to ``sending`` in its own
    commit before anything is sent. Only one dispatcher can win that claim,
    and a crash after it leaves the row in ``sending``, which recovery marks
    failed rather than sending twice.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        mailer: Optional[Mailer] = None,
        renderer: Optional[CertificateRenderer] = None,
    ):
        self.session_factory = session_factory
        self.mailer = mailer or Mailer()
        self.renderer = renderer or CertificateRenderer()

    async def dispatch(self, outbox_id: uuid.UUID) -> Optional[OutboxStatus]:
        """
        Deliver one row. Never raises; the outcome is recorded on the row.

        Returns the final status, or None when the row was not pending.
        """
        try:
            entry = await self._claim(outbox_id)
        except Exception:
            logger.exception("Could not claim notification", extra={"outbox_id": str(outbox_id)})
            return None
        if entry is None:
            return None

        try:
            attachments = await self._attachments(entry)
            delivered = await self.mailer.send(
                entry.recipient,
                entry.template_key,
                entry.payload,
                attachments,
            )
        except Exception as exc:
            logger.exception(
                "Notification delivery failed",
                extra={"outbox_id": str(outbox_id), "template_key": entry.template_key},
            )
            return await self._finish(outbox_id, OutboxStatus.FAILED, f"{type(exc).__name__}: {exc}")

        if not delivered:
            return await self._finish(outbox_id, OutboxStatus.FAILED, EMAIL_DISABLED)
        return await self._finish(outbox_id, OutboxStatus.SENT)

    async def recover_interrupted(self) -> dict:
        """
        Startup pass: rows stuck in ``sending`` become failed, pending rows
        are dispatched.
        """
        async with self.session_factory() as session:
            stale = await session.execute(
                update(NotificationOutbox)
                .where(NotificationOutbox.status == OutboxStatus.SENDING)
                .values(status=OutboxStatus.FAILED, error=INTERRUPTED)
            )
            pending = await session.execute(
                select(NotificationOutbox.id)
                .where(NotificationOutbox.status == OutboxStatus.PENDING)
                .order_by(NotificationOutbox.created_at)
            )
            pending_ids: List[uuid.UUID] = list(pending.scalars().all())
            await session.commit()

        interrupted = stale.rowcount or 0
        if interrupted:
            logger.warning("Marked interrupted notifications failed", extra={"count": interrupted})
        sent = 0
        for outbox_id in pending_ids:
            if await self.dispatch(outbox_id) == OutboxStatus.SENT:
                sent += 1
        return {"interrupted": interrupted, "pending": len(pending_ids), "sent": sent}

    async def _claim(self, outbox_id: uuid.UUID) -> Optional[NotificationOutbox]:
        async with self.session_factory() as session:
            result = await session.execute(
                update(NotificationOutbox)
                .where(
                    NotificationOutbox.id == outbox_id,
                    NotificationOutbox.status == OutboxStatus.PENDING,
                )
                .values(status=OutboxStatus.SENDING, attempted_at=utcnow())
            )
            if result.rowcount != 1:
                await session.rollback()
                return None
            await session.commit()
            return await session.get(NotificationOutbox, outbox_id)

    async def _attachments(self, entry: NotificationOutbox) -> List[Attachment]:
        if entry.template_key != TemplateKey.CERTIFICATE_ISSUED:
            return []
        data = CertificateData.model_validate(entry.payload)
        pdf = await asyncio.to_thread(self.renderer.render_pdf, data)
        return [Attachment(filename=f"certificate-{data.certificate_id}.pdf", content=pdf)]

    async def _finish(
        self,
        outbox_id: uuid.UUID,
        status: OutboxStatus,
        error: Optional[str] = None,
    ) -> Optional[OutboxStatus]:
        values = {"status": status, "error": error}
        if status == OutboxStatus.SENT:
            values["sent_at"] = utcnow()
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(NotificationOutbox)
                    .where(NotificationOutbox.id == outbox_id)
                    .values(**values)
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Could not record notification outcome",
                extra={"outbox_id": str(outbox_id), "status": status.value},
            )
            return None
        logger.info(
            "Notification processed",
            extra={"outbox_id": str(outbox_id), "status": status.value},
        )
        return status
