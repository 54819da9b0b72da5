"""
Integration tests for the assessment engine.

Each engine call runs in its own database session, the way each API request
does, so nothing is served from a stale identity map.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from assessment_platform.engines.assessment.engine import AssessmentEngine, Direction
from assessment_platform.engines.assessment.levels import Level
from assessment_platform.engines.assessment.session_store import SessionStore
from assessment_platform.kernel.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.models import (
    AssessmentSession,
    AssessmentStatus,
    Certificate,
    EventType,
    NotificationOutbox,
    OutboxStatus,
    QuestionResponse,
    ResponseResolution,
    SessionStatus,
    User,
)


async def call(session_factory, method, *args, **kwargs):
    async with session_factory() as session:
        return await getattr(AssessmentEngine(session), method)(*args, **kwargs)


async def answer(session_factory, user_id, session_id, correct=True):
    current = await call(session_factory, "get_current_question", user_id, session_id)
    return await call(
        session_factory,
        "submit_answer",
        user_id,
        session_id,
        current.question.id,
        0 if correct else 1,
        time_spent=12,
    )


async def run_session(session_factory, user_id, step, correct, total):
    """Start ``step`` and answer ``correct`` of ``total`` questions right."""
    started = await call(session_factory, "start", user_id, step)
    assert started.total_questions == total
    for position in range(total):
        await answer(session_factory, user_id, started.session_id, correct=position < correct)
    return started.session_id


async def load_user(session_factory, user_id) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def hold_commits(monkeypatch, parties=2):
    """Make engine commits wait until ``parties`` engines have read and mutated."""
    arrived = 0
    release = asyncio.Event()
    original = AssessmentEngine._commit

    async def gated(self):
        nonlocal arrived
        arrived += 1
        if arrived >= parties:
            release.set()
        await release.wait()
        await original(self)

    monkeypatch.setattr(AssessmentEngine, "_commit", gated)


class TestEligibility:
    async def test_step_one_is_open(self, session_factory, student):
        result = await call(session_factory, "check_eligibility", student.id, 1)

        assert result.eligible is True
        assert result.current_level is None

    async def test_later_step_requires_passing_previous(self, session_factory, student, bank):
        with pytest.raises(Forbidden) as exc_info:
            await call(session_factory, "check_eligibility", student.id, 2)
        assert "Step 1" in exc_info.value.message

    async def test_invalid_step(self, session_factory, student):
        with pytest.raises(ValidationError):
            await call(session_factory, "check_eligibility", student.id, 4)


class TestStart:
    async def test_start_builds_ordered_pool(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        assert started.resumed is False
        assert started.current_question_index == 0
        assert started.total_questions == 8

        current = await call(session_factory, "get_current_question", student.id, started.session_id)
        assert current.question.competency == "Competency 01"
        assert current.question.level == Level.A1
        assert current.progress.total_questions == 8
        assert current.progress.time_remaining <= 8 * 60
        assert current.progress.is_expired is False
        assert current.navigation.can_go_previous is False
        assert current.navigation.can_skip is True
        assert current.navigation.can_submit_test is False

    async def test_question_view_hides_answer_key(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        current = await call(session_factory, "get_current_question", student.id, started.session_id)

        assert "correct_option_index" not in current.question.model_dump()
        assert len(current.question.options) == 4

    async def test_start_is_idempotent(self, session_factory, student, bank):
        """A second start returns the session already running."""
        first = await call(session_factory, "start", student.id, 1)
        await answer(session_factory, student.id, first.session_id)

        second = await call(session_factory, "start", student.id, 1)

        assert second.resumed is True
        assert second.session_id == first.session_id
        assert second.current_question_index == 1
        assert await count_rows(session_factory, AssessmentSession) == 1
        assert await count_rows(session_factory, QuestionResponse) == 8

    async def test_concurrent_start_returns_winner(self, session_factory, student, bank, monkeypatch):
        """A start that misses the running session loses on the unique index and resumes it."""
        winner = await call(session_factory, "start", student.id, 1)
        original = SessionStore.find_in_progress
        lookups = []

        async def lookup_before_winner_commits(self, user_id, step):
            lookups.append(step)
            if len(lookups) == 1:
                return None
            return await original(self, user_id, step)

        monkeypatch.setattr(SessionStore, "find_in_progress", lookup_before_winner_commits)

        loser = await call(session_factory, "start", student.id, 1)

        assert len(lookups) == 2
        assert loser.resumed is True
        assert loser.session_id == winner.session_id
        assert await count_rows(session_factory, AssessmentSession) == 1
        assert await count_rows(session_factory, QuestionResponse) == 8

    async def test_empty_pool(self, session_factory, student):
        with pytest.raises(Conflict):
            await call(session_factory, "start", student.id, 1)

    async def test_step_two_forbidden_before_step_one(self, session_factory, student, bank):
        with pytest.raises(Forbidden):
            await call(session_factory, "start", student.id, 2)


class TestAnswering:
    async def test_submit_advances(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        result = await answer(session_factory, student.id, started.session_id, correct=True)

        assert result.is_correct is True
        assert result.auto_advanced is True
        assert result.current_question_index == 1

    async def test_answer_is_final(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        first = await call(session_factory, "get_current_question", student.id, started.session_id)
        await call(session_factory, "submit_answer", student.id, started.session_id, first.question.id, 2)

        await call(session_factory, "navigate", student.id, started.session_id, Direction.PREVIOUS)
        with pytest.raises(InvalidState):
            await call(
                session_factory, "submit_answer", student.id, started.session_id, first.question.id, 0
            )

    async def test_only_current_question(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        async with session_factory() as session:
            test_session = await AssessmentEngine(session).store.get_session(started.session_id)
            later_question = uuid.UUID(test_session.question_order[3])

        with pytest.raises(InvalidState):
            await call(session_factory, "submit_answer", student.id, started.session_id, later_question, 0)

    async def test_unknown_question(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(NotFound):
            await call(session_factory, "submit_answer", student.id, started.session_id, uuid.uuid4(), 0)

    async def test_option_out_of_range(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        current = await call(session_factory, "get_current_question", student.id, started.session_id)

        with pytest.raises(ValidationError):
            await call(
                session_factory, "submit_answer", student.id, started.session_id, current.question.id, 4
            )

    async def test_skip_is_final(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        skipped = await call(session_factory, "get_current_question", student.id, started.session_id)

        result = await call(session_factory, "skip_question", student.id, started.session_id)
        assert result.current_question_index == 1

        await call(session_factory, "navigate", student.id, started.session_id, Direction.PREVIOUS)
        current = await call(session_factory, "get_current_question", student.id, started.session_id)
        assert current.navigation.can_skip is False
        with pytest.raises(InvalidState):
            await call(
                session_factory, "submit_answer", student.id, started.session_id, skipped.question.id, 0
            )
        with pytest.raises(InvalidState):
            await call(session_factory, "skip_question", student.id, started.session_id)

    async def test_other_users_session_is_not_found(self, session_factory, student, other_student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(NotFound):
            await call(session_factory, "get_current_question", other_student.id, started.session_id)
        with pytest.raises(NotFound):
            await call(session_factory, "info", other_student.id, started.session_id)


    async def test_submit_and_skip_race(self, session_factory, student, bank, monkeypatch):
        """Only one of two concurrent resolutions of the same question commits."""
        started = await call(session_factory, "start", student.id, 1)
        current = await call(session_factory, "get_current_question", student.id, started.session_id)
        hold_commits(monkeypatch)

        submitted, skipped = await asyncio.gather(
            call(session_factory, "submit_answer", student.id, started.session_id, current.question.id, 0),
            call(session_factory, "skip_question", student.id, started.session_id),
            return_exceptions=True,
        )
        monkeypatch.undo()

        outcomes = [submitted, skipped]
        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], Conflict)
        expected = ResponseResolution.SKIPPED if isinstance(submitted, Exception) else ResponseResolution.ANSWERED

        async with session_factory() as session:
            test_session = await session.get(AssessmentSession, started.session_id)
            assert test_session.questions_answered == 1
            assert test_session.current_question_index == 1
            first = await SessionStore(session).get_response(started.session_id, 0)
            assert first.resolution == expected


class TestNavigation:
    async def test_previous_at_first_question(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(InvalidState):
            await call(session_factory, "navigate", student.id, started.session_id, Direction.PREVIOUS)

    async def test_next_requires_resolution(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(InvalidState) as exc_info:
            await call(session_factory, "navigate", student.id, started.session_id, Direction.NEXT)
        assert "before proceeding" in exc_info.value.message

    async def test_back_and_forward(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        await answer(session_factory, student.id, started.session_id)

        back = await call(session_factory, "navigate", student.id, started.session_id, Direction.PREVIOUS)
        assert back.current_question_index == 0

        forward = await call(session_factory, "navigate", student.id, started.session_id, "next")
        assert forward.current_question_index == 1
        assert forward.direction == Direction.NEXT

    async def test_next_at_last_question(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        for _ in range(8):
            await answer(session_factory, student.id, started.session_id)

        current = await call(session_factory, "get_current_question", student.id, started.session_id)
        assert current.progress.is_last_question is True
        assert current.navigation.can_go_next is False
        with pytest.raises(InvalidState):
            await call(session_factory, "navigate", student.id, started.session_id, Direction.NEXT)

    async def test_unknown_direction(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(ValidationError):
            await call(session_factory, "navigate", student.id, started.session_id, "sideways")


class TestCompletion:
    async def test_requires_a_resolved_question(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(InvalidState):
            await call(session_factory, "complete", student.id, started.session_id)

    async def test_pass_step_one(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=8, total=8)

        result = await call(session_factory, "complete", student.id, session_id, total_time_spent=300)

        assert result.test.status == SessionStatus.COMPLETED
        assert result.test.score == 100
        assert result.test.level_achieved == Level.A2
        assert result.test.can_proceed_to_next_step is True
        assert result.certificate is not None
        assert result.certificate.level_achieved == Level.A2
        assert result.notification_id is not None

        user = await load_user(session_factory, student.id)
        assert user.highest_level_achieved == "A2"
        assert user.current_step == 2

        eligibility = await call(session_factory, "check_eligibility", student.id, 2)
        assert eligibility.current_level == Level.A2

        async with session_factory() as session:
            outbox = await session.get(NotificationOutbox, result.notification_id)
            assert outbox.status == OutboxStatus.PENDING
            assert outbox.template_key == "certificate_issued"
            assert outbox.recipient == "student@example.com"
            assert outbox.payload["level"] == "A2"

    async def test_step_one_failure_blocks(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=1, total=8)

        result = await call(session_factory, "complete", student.id, session_id)

        assert result.test.score == 13
        assert result.test.status == SessionStatus.FAILED_NO_RETAKE
        assert result.test.blocks_retake is True
        assert result.test.level_achieved is None
        assert result.certificate is None
        assert result.notification_id is None

        user = await load_user(session_factory, student.id)
        assert user.assessment_status == AssessmentStatus.BLOCKED
        with pytest.raises(Forbidden):
            await call(session_factory, "start", student.id, 1)

        history = await call(session_factory, "history", student.id)
        assert all(not step.available for step in history.step_availability)

    async def test_middle_band_awards_lower_level(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=3, total=8)

        result = await call(session_factory, "complete", student.id, session_id)

        assert result.test.score == 38
        assert result.test.level_achieved == Level.A1
        assert result.test.can_proceed_to_next_step is False
        assert result.certificate is not None

    async def test_unresolved_questions_count_as_wrong(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)
        for _ in range(4):
            await answer(session_factory, student.id, started.session_id, correct=True)

        result = await call(session_factory, "complete", student.id, started.session_id)

        assert result.test.correct_answers == 4
        assert result.test.total_questions == 8
        assert result.test.score == 50

    async def test_complete_twice(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=8, total=8)
        await call(session_factory, "complete", student.id, session_id)

        with pytest.raises(InvalidState):
            await call(session_factory, "complete", student.id, session_id)
        with pytest.raises(InvalidState):
            await answer(session_factory, student.id, session_id)

        async with session_factory() as session:
            count = (await session.execute(select(func.count(Certificate.id)))).scalar()
        assert count == 1

    async def test_low_step_two_keeps_previous_level(self, session_factory, student, bank):
        first = await run_session(session_factory, student.id, 1, correct=8, total=8)
        await call(session_factory, "complete", student.id, first)

        second = await run_session(session_factory, student.id, 2, correct=1, total=8)
        result = await call(session_factory, "complete", student.id, second)

        assert result.test.level_achieved == Level.A2
        assert result.test.blocks_retake is False
        assert result.test.status == SessionStatus.COMPLETED

        user = await load_user(session_factory, student.id)
        assert user.highest_level_achieved == "A2"
        assert user.assessment_status != AssessmentStatus.BLOCKED

        # Step 2 can be retaken
        retake = await call(session_factory, "start", student.id, 2)
        assert retake.resumed is False

    async def test_level_never_goes_down(self, session_factory, student, bank):
        first = await run_session(session_factory, student.id, 1, correct=8, total=8)
        await call(session_factory, "complete", student.id, first)
        second = await run_session(session_factory, student.id, 2, correct=6, total=8)
        await call(session_factory, "complete", student.id, second)
        assert (await load_user(session_factory, student.id)).highest_level_achieved == "B2"

        retake = await run_session(session_factory, student.id, 1, correct=3, total=8)
        await call(session_factory, "complete", student.id, retake)

        assert (await load_user(session_factory, student.id)).highest_level_achieved == "B2"

    async def test_full_length_step(self, session_factory, student, bank_factory):
        """22 competencies give 44 questions; 38 right scores 86 and unlocks step 2."""
        await bank_factory(22)
        session_id = await run_session(session_factory, student.id, 1, correct=38, total=44)

        result = await call(session_factory, "complete", student.id, session_id, total_time_spent=1800)

        assert result.test.score == 86
        assert result.test.correct_answers == 38
        assert result.test.level_achieved == Level.A2
        assert result.test.can_proceed_to_next_step is True
        assert result.certificate.level_achieved == "A2"
        assert await count_rows(session_factory, Certificate) == 1
        assert (await load_user(session_factory, student.id)).highest_level_achieved == "A2"
        async with session_factory() as session:
            finished = await session.get(AssessmentSession, session_id)
            assert finished.time_spent_seconds == 1800

    async def test_full_length_step_with_no_correct_answers(self, session_factory, student, bank_factory):
        """10 wrong answers and 34 skips on 44 questions score 0 and block the user."""
        await bank_factory(22)
        started = await call(session_factory, "start", student.id, 1)
        assert started.total_questions == 44
        for _ in range(10):
            await answer(session_factory, student.id, started.session_id, correct=False)
        for _ in range(34):
            await call(session_factory, "skip_question", student.id, started.session_id)

        result = await call(session_factory, "complete", student.id, started.session_id)

        assert result.test.correct_answers == 0
        assert result.test.score == 0
        assert result.test.blocks_retake is True
        assert result.certificate is None
        assert await count_rows(session_factory, Certificate) == 0
        user = await load_user(session_factory, student.id)
        assert user.assessment_status == AssessmentStatus.BLOCKED
        with pytest.raises(Forbidden):
            await call(session_factory, "start", student.id, 1)


class TestReadModels:
    async def test_results_before_completion(self, session_factory, student, bank):
        started = await call(session_factory, "start", student.id, 1)

        with pytest.raises(InvalidState):
            await call(session_factory, "results", student.id, started.session_id)

    async def test_results_and_history(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=7, total=8)
        completed = await call(session_factory, "complete", student.id, session_id)

        results = await call(session_factory, "results", student.id, session_id)
        assert results.test.score == 88
        assert results.certificate.id == completed.certificate.id

        info = await call(session_factory, "info", student.id, session_id)
        assert info.status == SessionStatus.COMPLETED
        assert info.questions_answered == 8
        assert info.levels_tested == [Level.A1, Level.A2]
        assert info.completed_at is not None

        history = await call(session_factory, "history", student.id)
        assert [test.id for test in history.tests] == [session_id]
        availability = {step.step: step for step in history.step_availability}
        assert availability[1].passed is True
        assert availability[2].available is True
        assert availability[3].available is False
        assert history.user_status.current_step == 2


class TestAuditTrail:
    async def test_session_history(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=8, total=8)
        completed = await call(session_factory, "complete", student.id, session_id)

        async with session_factory() as session:
            store = EventStore(session)
            events = await store.get_entity_history("assessment_session", session_id)
            assert {event.event_type for event in events} == {
                EventType.ASSESSMENT_STARTED,
                EventType.ASSESSMENT_COMPLETED,
            }
            issued = await store.get_entity_history("certificate", completed.certificate.id)
            assert len(issued) == 1
            assert await store.count_events(EventType.USER_BLOCKED, user_id=student.id) == 0

    async def test_block_is_logged(self, session_factory, student, bank):
        session_id = await run_session(session_factory, student.id, 1, correct=0, total=8)
        await call(session_factory, "complete", student.id, session_id)

        async with session_factory() as session:
            store = EventStore(session)
            assert await store.count_events(EventType.USER_BLOCKED, user_id=student.id) == 1
            blocked = await store.get_entity_history(
                "user", student.id, event_types=[EventType.USER_BLOCKED]
            )
            assert blocked[0].payload["session_id"] == str(session_id)
