"""
Assessment Engine - the one-question-at-a-time session lifecycle.

Every operation re-reads the session, checks its guards, applies its change
and commits, all in one unit of work. Nothing is cached between calls.
Writes to a session row carry its version number, so two requests racing on
the same session cannot both succeed; the loser gets Conflict.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from assessment_platform.config import get_settings
from assessment_platform.engines.assessment.certification import CertificationTrigger
from assessment_platform.engines.assessment.levels import (
    FINAL_STEP,
    FIRST_STEP,
    STEP_LEVELS,
    Level,
    levels_for_step,
    ratchet,
)
from assessment_platform.engines.assessment.progression import ProgressionPolicy
from assessment_platform.engines.assessment.session_store import SessionStore
from assessment_platform.engines.catalog.question_bank import QuestionBank
from assessment_platform.kernel.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.models.assessment import (
    AssessmentSession,
    ResponseResolution,
    SessionStatus,
)
from assessment_platform.kernel.models.base import ensure_utc, utcnow
from assessment_platform.kernel.models.certificate import Certificate
from assessment_platform.kernel.models.event_log import EventType
from assessment_platform.kernel.models.question import Question
from assessment_platform.kernel.models.user import AssessmentStatus, User
from assessment_platform.logging_config import get_logger

logger = get_logger(__name__)


class Direction(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


class Eligibility(BaseModel):
    eligible: bool
    step: int
    current_level: Optional[Level] = None


class StartResult(BaseModel):
    session_id: uuid.UUID
    current_question_index: int
    total_questions: int
    resumed: bool = False


class QuestionView(BaseModel):
    """A question as shown to the candidate; the answer key is left out."""

    id: uuid.UUID
    competency_id: uuid.UUID
    competency: Optional[str] = None
    level: Level
    text: str
    options: List[str]


class Progress(BaseModel):
    current_index: int
    total_questions: int
    questions_answered: int
    progress_percentage: int
    time_remaining: int
    is_expired: bool
    is_last_question: bool
    has_next_question: bool


class Navigation(BaseModel):
    can_go_next: bool
    can_go_previous: bool
    can_skip: bool
    can_submit_test: bool


class CurrentQuestion(BaseModel):
    question: QuestionView
    progress: Progress
    navigation: Navigation


class AnswerResult(BaseModel):
    is_correct: bool
    current_question_index: int
    is_last_question: bool
    auto_advanced: bool


class SkipResult(BaseModel):
    current_question_index: int
    is_last_question: bool
    auto_advanced: bool


class NavigateResult(BaseModel):
    current_question_index: int
    direction: Direction


class TestOutcome(BaseModel):
    id: uuid.UUID
    step: int
    status: SessionStatus
    correct_answers: int
    total_questions: int
    score: int
    level_achieved: Optional[Level] = None
    can_proceed_to_next_step: bool
    blocks_retake: bool


class CertificateSummary(BaseModel):
    id: uuid.UUID
    level_achieved: Level
    email_scheduled: bool = True


class CompletionResult(BaseModel):
    test: TestOutcome
    certificate: Optional[CertificateSummary] = None
    notification_id: Optional[uuid.UUID] = None


class SessionInfo(BaseModel):
    id: uuid.UUID
    step: int
    status: SessionStatus
    levels_tested: List[Level]
    current_question_index: int
    total_questions: int
    questions_answered: int
    score: Optional[int] = None
    level_achieved: Optional[Level] = None
    can_proceed_to_next_step: bool
    blocks_retake: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_limit_seconds: int
    time_spent_seconds: int


class StepAvailability(BaseModel):
    step: int
    levels: List[Level]
    available: bool
    passed: bool


class UserStatus(BaseModel):
    highest_level_achieved: Optional[Level] = None
    assessment_status: AssessmentStatus
    current_step: int


class History(BaseModel):
    tests: List[SessionInfo]
    step_availability: List[StepAvailability]
    user_status: UserStatus


class Results(BaseModel):
    test: TestOutcome
    certificate: Optional[CertificateSummary] = None


def _percentage(part: int, whole: int) -> int:
    return (200 * part + whole) // (2 * whole) if whole else 0


class AssessmentEngine:
    """
    Runs assessment sessions for one request's database session.

    Session ids that belong to a different user are reported as NotFound so
    that ids cannot be probed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()
        self.store = SessionStore(session)
        self.bank = QuestionBank(session)
        self.certification = CertificationTrigger(session)
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Eligibility and start
    # ------------------------------------------------------------------

    async def check_eligibility(self, user_id: uuid.UUID, step: int) -> Eligibility:
        """
        Raises:
            ValidationError: Step outside 1-3
            Forbidden: The user is blocked, or the previous step was not
                passed with a score that unlocks this one
        """
        if step not in STEP_LEVELS:
            raise ValidationError("Step must be 1, 2 or 3")
        user = await self._load_user(user_id)
        if user.is_blocked:
            raise Forbidden("Assessment access blocked due to Step 1 failure (<25%)")
        if step > FIRST_STEP and not await self.store.has_passed_step(user_id, step - 1):
            raise Forbidden(f"Must complete Step {step - 1} with at least 75% to access Step {step}")
        return Eligibility(
            eligible=True,
            step=step,
            current_level=user.highest_level_achieved,
        )

    async def start(self, user_id: uuid.UUID, step: int) -> StartResult:
        """
        Start a session for ``step`` or return the one already running.

        The pool is taken in the question bank's stable order, unshuffled.

        Raises:
            Forbidden: Not eligible
            Conflict: No active questions for the step's levels
        """
        await self.check_eligibility(user_id, step)

        existing = await self.store.find_in_progress(user_id, step)
        if existing:
            return self._start_result(existing, resumed=True)

        levels = levels_for_step(step)
        try:
            pool = await self.bank.questions_for_levels(levels)
        except NotFound:
            raise Conflict(f"No questions available for Step {step}") from None
        order = [question.id for question in pool]

        try:
            test_session = await self.store.create_session(user_id, step, levels, order)
        except Conflict:
            # Lost a race with a concurrent start; hand back the winner's session
            await self.session.rollback()
            existing = await self.store.find_in_progress(user_id, step)
            if existing is None:
                raise
            return self._start_result(existing, resumed=True)

        await self.store.create_responses(test_session, order)
        await self.event_store.log(
            event_type=EventType.ASSESSMENT_STARTED,
            entity_type="assessment_session",
            entity_id=test_session.id,
            user_id=user_id,
            payload={"step": step, "total_questions": len(order)},
        )
        await self._commit()
        logger.info(
            "Assessment started",
            extra={"session_id": str(test_session.id), "step": step, "total_questions": len(order)},
        )
        return self._start_result(test_session, resumed=False)

    @staticmethod
    def _start_result(test_session: AssessmentSession, resumed: bool) -> StartResult:
        return StartResult(
            session_id=test_session.id,
            current_question_index=test_session.current_question_index,
            total_questions=test_session.total_questions,
            resumed=resumed,
        )

    # ------------------------------------------------------------------
    # In-progress operations
    # ------------------------------------------------------------------

    async def get_current_question(self, user_id: uuid.UUID, session_id: uuid.UUID) -> CurrentQuestion:
        test_session = await self._load_in_progress(user_id, session_id)
        response = await self.store.get_response(test_session.id, test_session.current_question_index)
        question = await self.session.get(Question, test_session.current_question_id)
        if response is None or question is None:
            raise NotFound("Current question not found")

        index = test_session.current_question_index
        last_index = test_session.total_questions - 1
        elapsed = int((utcnow() - ensure_utc(test_session.started_at)).total_seconds())
        time_remaining = max(0, test_session.time_limit_seconds - elapsed)
        resolved = response.is_resolved

        return CurrentQuestion(
            question=QuestionView(
                id=question.id,
                competency_id=question.competency_id,
                competency=question.competency.name if question.competency else None,
                level=question.level,
                text=question.text,
                options=list(question.options),
            ),
            progress=Progress(
                current_index=index,
                total_questions=test_session.total_questions,
                questions_answered=test_session.questions_answered,
                progress_percentage=_percentage(
                    test_session.questions_answered, test_session.total_questions
                ),
                time_remaining=time_remaining,
                is_expired=time_remaining == 0,
                is_last_question=index >= last_index,
                has_next_question=index < last_index,
            ),
            navigation=Navigation(
                can_go_next=resolved and index < last_index,
                can_go_previous=index > 0,
                can_skip=not resolved,
                can_submit_test=test_session.questions_answered > 0,
            ),
        )

    async def submit_answer(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        question_id: uuid.UUID,
        selected_option_index: int,
        time_spent: int = 0,
    ) -> AnswerResult:
        """
        Record an answer to the current question and move to the next one.

        Raises:
            ValidationError: Option index outside 0-3
            NotFound: Session or question not part of it
            InvalidState: Session finished, question already resolved, or
                not the current question
        """
        if not 0 <= selected_option_index <= 3:
            raise ValidationError("selected_option_index must be between 0 and 3")

        test_session = await self._load_in_progress(user_id, session_id)
        response = await self.store.get_response_for_question(test_session.id, question_id)
        if response is None:
            raise NotFound("Question not found in this assessment")
        if response.resolution == ResponseResolution.ANSWERED:
            raise InvalidState("Question already answered")
        if response.resolution == ResponseResolution.SKIPPED:
            raise InvalidState("Question was skipped and cannot be answered")
        if response.position != test_session.current_question_index:
            raise InvalidState("Only the current question can be answered")

        question = await self.session.get(Question, question_id)
        if question is None:
            raise NotFound("Question not found")

        now = utcnow()
        is_correct = selected_option_index == question.correct_option_index
        response.resolution = ResponseResolution.ANSWERED
        response.selected_option_index = selected_option_index
        response.is_correct = is_correct
        response.answered_at = now
        response.time_spent_seconds = max(0, int(time_spent or 0))
        test_session.questions_answered += 1

        advanced = await self._advance(test_session, now)
        await self._commit()
        return AnswerResult(
            is_correct=is_correct,
            current_question_index=test_session.current_question_index,
            is_last_question=self._on_last(test_session),
            auto_advanced=advanced,
        )

    async def skip_question(self, user_id: uuid.UUID, session_id: uuid.UUID) -> SkipResult:
        """Resolve the current question as skipped; it cannot be answered later."""
        test_session = await self._load_in_progress(user_id, session_id)
        response = await self.store.get_response(test_session.id, test_session.current_question_index)
        if response is None:
            raise NotFound("Current question response not found")
        if response.is_resolved:
            raise InvalidState("Question already answered or skipped")

        now = utcnow()
        response.resolution = ResponseResolution.SKIPPED
        response.answered_at = now
        test_session.questions_answered += 1

        advanced = await self._advance(test_session, now)
        await self._commit()
        return SkipResult(
            current_question_index=test_session.current_question_index,
            is_last_question=self._on_last(test_session),
            auto_advanced=advanced,
        )

    async def navigate(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        direction: Direction,
    ) -> NavigateResult:
        """
        Move the cursor one question back, or forward past a resolved one.

        Raises:
            InvalidState: At a boundary, or moving forward from an
                unresolved question
        """
        try:
            direction = Direction(direction)
        except ValueError:
            raise ValidationError("direction must be 'next' or 'previous'") from None

        test_session = await self._load_in_progress(user_id, session_id)
        index = test_session.current_question_index

        if direction == Direction.PREVIOUS:
            if index <= 0:
                raise InvalidState("Cannot navigate previous")
            self._move_to(test_session, index - 1)
        else:
            response = await self.store.get_response(test_session.id, index)
            if response is None or not response.is_resolved:
                raise InvalidState(
                    "Must submit answer or skip current question before proceeding to next"
                )
            if not await self._advance(test_session, utcnow()):
                raise InvalidState("Cannot navigate next")

        await self._commit()
        return NavigateResult(
            current_question_index=test_session.current_question_index,
            direction=direction,
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        total_time_spent: int = 0,
    ) -> CompletionResult:
        """
        Score the session and apply the progression outcome.

        Session, user, certificate and outbox writes commit together. A
        version conflict rolls everything back and the whole step is
        retried from a fresh read, up to ``complete_max_retries`` times.

        Raises:
            InvalidState: Already finished, or nothing resolved yet
            Conflict: Still conflicting after the last retry
        """
        attempts = max(1, self.settings.complete_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return await self._complete_once(user_id, session_id, total_time_spent)
            except (StaleDataError, IntegrityError):
                await self.session.rollback()
                logger.warning(
                    "Assessment completion conflicted",
                    extra={"session_id": str(session_id), "attempt": attempt},
                )
        raise Conflict("The assessment was modified concurrently, please retry")

    async def _complete_once(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        total_time_spent: int,
    ) -> CompletionResult:
        test_session = await self._load(user_id, session_id, refresh=True)
        if test_session.status == SessionStatus.COMPLETED:
            raise InvalidState("Test already completed")
        if not test_session.is_in_progress:
            raise InvalidState("Test is not in progress")
        if test_session.questions_answered == 0:
            raise InvalidState("Answer or skip at least one question before completing")

        correct = await self.store.count_correct(test_session.id)
        score = ProgressionPolicy.score(correct, test_session.total_questions)
        outcome = ProgressionPolicy.evaluate(test_session.step, score)
        level = outcome.level_achieved.value if outcome.level_achieved else None

        test_session.status = (
            SessionStatus.FAILED_NO_RETAKE if outcome.blocks_retake else SessionStatus.COMPLETED
        )
        test_session.completed_at = utcnow()
        test_session.correct_answers = correct
        test_session.score = score
        test_session.level_achieved = level
        test_session.can_proceed_to_next_step = outcome.can_proceed_to_next_step
        test_session.blocks_retake = outcome.blocks_retake
        test_session.time_spent_seconds = max(0, int(total_time_spent or 0))

        user = await self._load_user(test_session.user_id, refresh=True)
        if outcome.blocks_retake:
            user.assessment_status = AssessmentStatus.BLOCKED
            await self.event_store.log(
                event_type=EventType.USER_BLOCKED,
                entity_type="user",
                entity_id=user.id,
                user_id=user.id,
                payload={"session_id": test_session.id, "score": score},
            )
        highest = ratchet(user.highest_level_achieved, level)
        user.highest_level_achieved = highest.value if highest else None
        if outcome.can_proceed_to_next_step:
            user.current_step = max(user.current_step, min(test_session.step + 1, FINAL_STEP))

        certificate_summary = None
        notification_id = None
        if level is not None:
            certificate, entry = await self.certification.issue(test_session, user)
            certificate_summary = CertificateSummary(
                id=certificate.id,
                level_achieved=certificate.level_achieved,
            )
            notification_id = entry.id

        await self.event_store.log(
            event_type=EventType.ASSESSMENT_COMPLETED,
            entity_type="assessment_session",
            entity_id=test_session.id,
            user_id=user.id,
            payload={
                "step": test_session.step,
                "score": score,
                "correct_answers": correct,
                "level_achieved": level,
                "status": test_session.status,
            },
        )
        await self.session.commit()

        logger.info(
            "Assessment completed",
            extra={
                "session_id": str(test_session.id),
                "score": score,
                "level_achieved": level,
                "blocks_retake": outcome.blocks_retake,
            },
        )
        return CompletionResult(
            test=self._outcome(test_session),
            certificate=certificate_summary,
            notification_id=notification_id,
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def info(self, user_id: uuid.UUID, session_id: uuid.UUID) -> SessionInfo:
        return self._info(await self._load(user_id, session_id))

    async def results(self, user_id: uuid.UUID, session_id: uuid.UUID) -> Results:
        """Outcome of a finished session with its certificate, if any."""
        test_session = await self._load(user_id, session_id)
        if not test_session.is_terminal or test_session.score is None:
            raise InvalidState("Test is not completed yet")
        certificate = await self._certificate_for(test_session.id)
        return Results(
            test=self._outcome(test_session),
            certificate=(
                CertificateSummary(id=certificate.id, level_achieved=certificate.level_achieved)
                if certificate
                else None
            ),
        )

    async def history(self, user_id: uuid.UUID) -> History:
        user = await self._load_user(user_id)
        sessions = await self.store.sessions_for_user(user_id)
        passed = {
            s.step
            for s in sessions
            if s.status == SessionStatus.COMPLETED and s.can_proceed_to_next_step
        }
        availability = [
            StepAvailability(
                step=step,
                levels=list(levels),
                available=not user.is_blocked and (step == FIRST_STEP or (step - 1) in passed),
                passed=step in passed,
            )
            for step, levels in STEP_LEVELS.items()
        ]
        return History(
            tests=[self._info(s) for s in sessions],
            step_availability=availability,
            user_status=UserStatus(
                highest_level_achieved=user.highest_level_achieved,
                assessment_status=user.assessment_status,
                current_step=user.current_step,
            ),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_user(self, user_id: uuid.UUID, refresh: bool = False) -> User:
        user = await self.session.get(User, user_id, populate_existing=refresh)
        if user is None:
            raise NotFound("User not found")
        return user

    async def _load(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        refresh: bool = False,
    ) -> AssessmentSession:
        test_session = await self.store.get_session(session_id, refresh=refresh)
        if test_session is None or test_session.user_id != user_id:
            raise NotFound("Test not found")
        return test_session

    async def _load_in_progress(self, user_id: uuid.UUID, session_id: uuid.UUID) -> AssessmentSession:
        test_session = await self._load(user_id, session_id, refresh=True)
        if not test_session.is_in_progress:
            raise InvalidState("Test is not in progress")
        return test_session

    async def _certificate_for(self, session_id: uuid.UUID) -> Optional[Certificate]:
        result = await self.session.execute(
            select(Certificate).where(Certificate.session_id == session_id)
        )
        return result.scalar_one_or_none()

    def _move_to(self, test_session: AssessmentSession, index: int) -> None:
        test_session.current_question_index = index
        test_session.current_question_id = uuid.UUID(test_session.question_order[index])
        test_session.furthest_question_index = max(test_session.furthest_question_index, index)

    async def _advance(self, test_session: AssessmentSession, now: datetime) -> bool:
        """Step forward one question if there is one; stamps its start time once."""
        if test_session.current_question_index >= test_session.total_questions - 1:
            return False
        self._move_to(test_session, test_session.current_question_index + 1)
        upcoming = await self.store.get_response(test_session.id, test_session.current_question_index)
        if upcoming is not None and upcoming.question_started_at is None:
            upcoming.question_started_at = now
        test_session.last_question_started_at = now
        return True

    @staticmethod
    def _on_last(test_session: AssessmentSession) -> bool:
        return test_session.current_question_index >= test_session.total_questions - 1

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except StaleDataError:
            await self.session.rollback()
            raise Conflict("The assessment was modified concurrently, please retry") from None

    @staticmethod
    def _outcome(test_session: AssessmentSession) -> TestOutcome:
        return TestOutcome(
            id=test_session.id,
            step=test_session.step,
            status=test_session.status,
            correct_answers=test_session.correct_answers,
            total_questions=test_session.total_questions,
            score=test_session.score or 0,
            level_achieved=test_session.level_achieved,
            can_proceed_to_next_step=test_session.can_proceed_to_next_step,
            blocks_retake=test_session.blocks_retake,
        )

    @staticmethod
    def _info(test_session: AssessmentSession) -> SessionInfo:
        return SessionInfo(
            id=test_session.id,
            step=test_session.step,
            status=test_session.status,
            levels_tested=test_session.levels_tested,
            current_question_index=test_session.current_question_index,
            total_questions=test_session.total_questions,
            questions_answered=test_session.questions_answered,
            score=test_session.score,
            level_achieved=test_session.level_achieved,
            can_proceed_to_next_step=test_session.can_proceed_to_next_step,
            blocks_retake=test_session.blocks_retake,
            started_at=ensure_utc(test_session.started_at),
            completed_at=ensure_utc(test_session.completed_at),
            time_limit_seconds=test_session.time_limit_seconds,
            time_spent_seconds=test_session.time_spent_seconds,
        )
