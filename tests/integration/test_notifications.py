"""Integration tests for certificate issuance, the outbox and the dispatcher."""

import uuid

import pytest

from assessment_platform.engines.assessment.engine import AssessmentEngine
from assessment_platform.engines.certificates import CertificateService
from assessment_platform.engines.notifications import Outbox, TemplateKey
from assessment_platform.engines.notifications.dispatcher import (
    EMAIL_DISABLED,
    INTERRUPTED,
    NotificationDispatcher,
)
from assessment_platform.engines.notifications.mailer import Mailer
from assessment_platform.kernel.errors import NotFound
from assessment_platform.kernel.models import NotificationOutbox, OutboxStatus


async def complete_step_one(session_factory, user_id, correct=8):
    async with session_factory() as session:
        started = await AssessmentEngine(session).start(user_id, 1)
    for position in range(started.total_questions):
        async with session_factory() as session:
            engine = AssessmentEngine(session)
            current = await engine.get_current_question(user_id, started.session_id)
            await engine.submit_answer(
                user_id, started.session_id, current.question.id, 0 if position < correct else 1
            )
    async with session_factory() as session:
        return await AssessmentEngine(session).complete(user_id, started.session_id)


async def queue(session_factory, template_key=TemplateKey.EMAIL_VERIFICATION, recipient="someone@example.com"):
    async with session_factory() as session:
        entry = await Outbox(session).enqueue(
            template_key, recipient, {"full_name": "Someone", "otp_code": "654321", "expires_minutes": 5}
        )
        await session.commit()
        return entry.id


async def outbox_row(session_factory, outbox_id) -> NotificationOutbox:
    async with session_factory() as session:
        return await session.get(NotificationOutbox, outbox_id)


class TestDispatch:
    async def test_certificate_email_carries_pdf(self, session_factory, student, bank, mailer, renderer):
        completed = await complete_step_one(session_factory, student.id)
        dispatcher = NotificationDispatcher(session_factory, mailer=mailer, renderer=renderer)

        status = await dispatcher.dispatch(completed.notification_id)

        assert status == OutboxStatus.SENT
        assert len(mailer.sent) == 1
        message = mailer.sent[0]
        assert message["recipient"] == "student@example.com"
        assert message["template_key"] == TemplateKey.CERTIFICATE_ISSUED
        assert message["attachments"][0].filename == f"certificate-{completed.certificate.id}.pdf"
        assert message["attachments"][0].content.startswith(b"%PDF")
        assert renderer.rendered[0].full_name == "Sam Student"
        assert renderer.rendered[0].level == "A2"

        row = await outbox_row(session_factory, completed.notification_id)
        assert row.status == OutboxStatus.SENT
        assert row.sent_at is not None
        assert row.error is None

    async def test_dispatch_is_at_most_once(self, session_factory, mailer, renderer):
        outbox_id = await queue(session_factory)
        dispatcher = NotificationDispatcher(session_factory, mailer=mailer, renderer=renderer)

        assert await dispatcher.dispatch(outbox_id) == OutboxStatus.SENT
        assert await dispatcher.dispatch(outbox_id) is None
        assert len(mailer.sent) == 1

    async def test_failure_is_recorded(self, session_factory, mailer, renderer):
        outbox_id = await queue(session_factory)
        mailer.fail_with = ConnectionRefusedError("smtp down")
        dispatcher = NotificationDispatcher(session_factory, mailer=mailer, renderer=renderer)

        status = await dispatcher.dispatch(outbox_id)

        assert status == OutboxStatus.FAILED
        row = await outbox_row(session_factory, outbox_id)
        assert row.status == OutboxStatus.FAILED
        assert row.error == "ConnectionRefusedError: smtp down"
        assert row.attempted_at is not None

    async def test_disabled_email_marks_failed(self, session_factory, renderer):
        outbox_id = await queue(session_factory)
        dispatcher = NotificationDispatcher(session_factory, mailer=Mailer(), renderer=renderer)

        assert await dispatcher.dispatch(outbox_id) == OutboxStatus.FAILED
        assert (await outbox_row(session_factory, outbox_id)).error == EMAIL_DISABLED

    async def test_unknown_row(self, session_factory, mailer, renderer):
        dispatcher = NotificationDispatcher(session_factory, mailer=mailer, renderer=renderer)

        assert await dispatcher.dispatch(uuid.uuid4()) is None
        assert mailer.sent == []

    async def test_recover_interrupted(self, session_factory, mailer, renderer):
        stuck = await queue(session_factory, recipient="stuck@example.com")
        waiting = await queue(session_factory, recipient="waiting@example.com")
        async with session_factory() as session:
            row = await session.get(NotificationOutbox, stuck)
            row.status = OutboxStatus.SENDING
            await session.commit()

        dispatcher = NotificationDispatcher(session_factory, mailer=mailer, renderer=renderer)
        summary = await dispatcher.recover_interrupted()

        assert summary == {"interrupted": 1, "pending": 1, "sent": 1}
        assert [m["recipient"] for m in mailer.sent] == ["waiting@example.com"]
        stuck_row = await outbox_row(session_factory, stuck)
        assert stuck_row.status == OutboxStatus.FAILED
        assert stuck_row.error == INTERRUPTED
        assert (await outbox_row(session_factory, waiting)).status == OutboxStatus.SENT

    async def test_unknown_template_is_rejected(self, db_session):
        with pytest.raises(ValueError):
            await Outbox(db_session).enqueue("newsletter", "a@example.com", {})


class TestCertificateService:
    async def test_owner_and_admin_can_view(self, session_factory, student, admin, bank, renderer):
        completed = await complete_step_one(session_factory, student.id)

        async with session_factory() as session:
            service = CertificateService(session, renderer=renderer)
            owned = await service.list_for_user(student.id)
            assert [c.id for c in owned] == [completed.certificate.id]

            as_admin = await service.get_for(completed.certificate.id, admin)
            assert as_admin.level_achieved == "A2"
            assert as_admin.score == 100

            certificate, pdf = await service.render_pdf(completed.certificate.id, student)
            assert certificate.step == 1
            assert pdf.startswith(b"%PDF")

    async def test_other_user_gets_not_found(self, session_factory, student, other_student, bank, renderer):
        completed = await complete_step_one(session_factory, student.id)

        async with session_factory() as session:
            service = CertificateService(session, renderer=renderer)
            with pytest.raises(NotFound):
                await service.get_for(completed.certificate.id, other_student)
            with pytest.raises(NotFound):
                await service.get_for(uuid.uuid4(), student)

    async def test_no_certificate_without_level(self, session_factory, student, bank, renderer):
        completed = await complete_step_one(session_factory, student.id, correct=0)

        assert completed.certificate is None
        async with session_factory() as session:
            assert await CertificateService(session, renderer=renderer).list_for_user(student.id) == []
