"""
Certification Trigger - issues the certificate for a completed session and
queues its email, inside the completion transaction.
"""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.engines.notifications.outbox import Outbox, TemplateKey
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.models.assessment import AssessmentSession
from assessment_platform.kernel.models.base import utcnow
from assessment_platform.kernel.models.certificate import Certificate
from assessment_platform.kernel.models.event_log import EventType
from assessment_platform.kernel.models.notification import NotificationOutbox
from assessment_platform.kernel.models.user import User


class CertificationTrigger:
    """
    Writes a Certificate and a ``certificate_issued`` outbox row.

    Nothing is sent here. The outbox row becomes visible only if the
    surrounding completion commits, and the dispatcher picks it up after.
    The unique session_id column stops a second certificate for the same
    session even if two completions race.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.outbox = Outbox(session)
        self.event_store = EventStore(session)

    async def issue(
        self,
        test_session: AssessmentSession,
        user: User,
    ) -> Tuple[Certificate, NotificationOutbox]:
        if test_session.level_achieved is None:
            raise ValueError("Certificates are only issued for sessions that achieved a level")

        certificate = Certificate(
            user_id=user.id,
            session_id=test_session.id,
            level_achieved=test_session.level_achieved,
            score=test_session.score,
            step=test_session.step,
            issued_at=utcnow(),
        )
        self.session.add(certificate)
        await self.session.flush()

        entry = await self.outbox.enqueue(
            TemplateKey.CERTIFICATE_ISSUED,
            user.email,
            {
                "certificate_id": str(certificate.id),
                "full_name": user.full_name,
                "level": certificate.level_achieved,
                "score": certificate.score,
                "step": certificate.step,
                "issued_at": certificate.issued_at.isoformat(),
            },
        )
        await self.event_store.log(
            event_type=EventType.CERTIFICATE_ISSUED,
            entity_type="certificate",
            entity_id=certificate.id,
            user_id=user.id,
            payload={"session_id": test_session.id, "level": certificate.level_achieved},
        )
        return certificate, entry
