"""
Question Bank - validated storage of four-option questions per competency
and level, and the deterministic question pools assessments are built from.
"""

import random
import uuid
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.engines.assessment.levels import STEP_LEVELS, Level, levels_for_step
from assessment_platform.kernel.errors import Conflict, NotFound, ValidationError
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.models.assessment import (
    AssessmentSession,
    QuestionResponse,
    SessionStatus,
)
from assessment_platform.kernel.models.competency import Competency
from assessment_platform.kernel.models.event_log import EventType
from assessment_platform.kernel.models.question import Question
from assessment_platform.logging_config import get_logger

logger = get_logger(__name__)

OPTION_COUNT = 4
LEVELS_PER_STEP = 2


def validate_question_shape(options: Sequence[str], correct_option_index: int) -> List[str]:
    """
    Check the four-option rule and return the options stripped of whitespace.

    Raises:
        ValidationError: Wrong option count, a blank option, or a correct
            index outside 0-3
    """
    if options is None or len(options) != OPTION_COUNT:
        raise ValidationError("Question must have exactly 4 non-empty options")
    cleaned = [str(option).strip() for option in options]
    if any(not option for option in cleaned):
        raise ValidationError("Question must have exactly 4 non-empty options")
    if not isinstance(correct_option_index, int) or not 0 <= correct_option_index < OPTION_COUNT:
        raise ValidationError("Correct option index must be between 0 and 3")
    return cleaned


def _coerce_level(level) -> Level:
    try:
        return Level(level)
    except ValueError:
        raise ValidationError(f"Invalid level: {level}") from None


class StepReadiness(BaseModel):
    step: int
    levels: List[Level]
    questions_required: int
    questions_available: int
    is_ready: bool
    completion: int


class BankReadiness(BaseModel):
    """How far the bank is from supporting every step."""

    total_competencies: int
    required_questions_total: int
    total_questions_available: int
    overall_completion: int
    step_status: List[StepReadiness]
    questions_by_level: dict[str, int]


def _completion(available: int, required: int) -> int:
    if required == 0:
        return 0
    return min(100, (200 * available + required) // (2 * required))


class QuestionBank:
    """
    Admin-facing question CRUD plus the read paths the assessment engine uses.

    One active question is allowed per (competency, level). Questions that an
    in-progress session points at are never rewritten: an edit retires the
    row and inserts a replacement, so the running session keeps scoring
    against what it was shown.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Engine reads
    # ------------------------------------------------------------------

    async def questions_for_levels(
        self,
        levels: Iterable[Level],
        active_only: bool = True,
    ) -> List[Question]:
        """
        Questions at the given levels, ordered by competency name then level.

        Raises:
            NotFound: The pool is empty
        """
        level_values = sorted({Level(level).value for level in levels})
        query = (
            select(Question)
            .join(Competency, Question.competency_id == Competency.id)
            .where(Question.level.in_(level_values))
            .order_by(Competency.name_key, Question.level, Question.created_at, Question.id)
        )
        if active_only:
            query = query.where(Question.is_active == True)  # noqa: E712
        result = await self.session.execute(query)
        questions = list(result.unique().scalars().all())
        if not questions:
            raise NotFound(f"No questions available for levels {', '.join(level_values)}")
        return questions

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get_question(self, question_id: uuid.UUID) -> Question:
        question = await self.session.get(Question, question_id)
        if not question:
            raise NotFound("Question not found")
        return question

    async def create_question(
        self,
        competency_id: uuid.UUID,
        level,
        text: str,
        options: Sequence[str],
        correct_option_index: int,
        difficulty: Optional[int] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> Question:
        """
        Raises:
            ValidationError: Bad shape, unknown level or unknown competency
            Conflict: An active question already covers (competency, level)
        """
        competency = await self.session.get(Competency, competency_id)
        if not competency:
            raise ValidationError("Invalid competency ID")
        cleaned = validate_question_shape(options, correct_option_index)
        level = _coerce_level(level)
        if not text or not text.strip():
            raise ValidationError("Question text is required")
        await self._ensure_slot_free(competency, level)

        question = Question(
            competency_id=competency.id,
            level=level.value,
            text=text.strip(),
            options=cleaned,
            correct_option_index=correct_option_index,
            difficulty=difficulty,
            is_active=True,
            created_by=created_by,
        )
        question.competency = competency
        self.session.add(question)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.QUESTION_CREATED,
            entity_type="question",
            entity_id=question.id,
            user_id=created_by,
            payload={"competency_id": competency.id, "level": level},
        )
        return question

    async def update_question(
        self,
        question_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
        **changes,
    ) -> Question:
        """
        Apply field changes (text, options, correct_option_index, level,
        competency_id, difficulty, is_active).

        Returns the row now holding the content: the same row, or its
        replacement when the original is in use by a running session.
        """
        question = await self.get_question(question_id)
        changes = {key: value for key, value in changes.items() if value is not None}
        if not changes:
            return question

        options = changes.get("options", question.options)
        correct = changes.get("correct_option_index", question.correct_option_index)
        cleaned = validate_question_shape(options, correct)
        level = _coerce_level(changes.get("level", question.level))
        competency = question.competency
        if "competency_id" in changes and changes["competency_id"] != question.competency_id:
            competency = await self.session.get(Competency, changes["competency_id"])
            if not competency:
                raise ValidationError("Invalid competency ID")
        text = changes.get("text", question.text)
        if not text or not text.strip():
            raise ValidationError("Question text is required")
        is_active = changes.get("is_active", question.is_active)
        if is_active:
            await self._ensure_slot_free(competency, level, exclude_id=question.id)

        if await self._in_active_use(question.id):
            question.is_active = False
            await self.session.flush()
            replacement = Question(
                competency_id=competency.id,
                level=level.value,
                text=text.strip(),
                options=cleaned,
                correct_option_index=correct,
                difficulty=changes.get("difficulty", question.difficulty),
                is_active=is_active,
                supersedes_id=question.id,
                created_by=actor_id,
            )
            replacement.competency = competency
            self.session.add(replacement)
            await self.session.flush()
            await self.event_store.log(
                event_type=EventType.QUESTION_SUPERSEDED,
                entity_type="question",
                entity_id=replacement.id,
                user_id=actor_id,
                payload={"supersedes_id": question.id},
            )
            logger.info(
                "Question superseded",
                extra={"question_id": str(question.id), "replacement_id": str(replacement.id)},
            )
            return replacement

        question.competency_id = competency.id
        question.competency = competency
        question.level = level.value
        question.text = text.strip()
        question.options = cleaned
        question.correct_option_index = correct
        question.difficulty = changes.get("difficulty", question.difficulty)
        question.is_active = is_active
        await self.session.flush()
        await self.event_store.log(
            event_type=EventType.QUESTION_UPDATED,
            entity_type="question",
            entity_id=question.id,
            user_id=actor_id,
            payload={"fields": sorted(changes)},
        )
        return question

    async def delete_question(
        self,
        question_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Question:
        """Soft delete; sessions already holding the question are unaffected."""
        question = await self.get_question(question_id)
        question.is_active = False
        await self.event_store.log(
            event_type=EventType.QUESTION_DEACTIVATED,
            entity_type="question",
            entity_id=question.id,
            user_id=actor_id,
        )
        return question

    async def list_questions(
        self,
        competency_id: Optional[uuid.UUID] = None,
        level: Optional[Level] = None,
        step: Optional[int] = None,
        is_active: bool = True,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[List[Question], int]:
        """Filtered page of questions (step wins over level); returns (items, total)."""
        conditions = [Question.is_active == is_active]
        if competency_id:
            conditions.append(Question.competency_id == competency_id)
        if step:
            conditions.append(Question.level.in_([lvl.value for lvl in levels_for_step(step)]))
        elif level:
            conditions.append(Question.level == Level(level).value)

        total = (
            await self.session.execute(select(func.count(Question.id)).where(and_(*conditions)))
        ).scalar() or 0
        result = await self.session.execute(
            select(Question)
            .where(and_(*conditions))
            .order_by(Question.level, Question.created_at)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.unique().scalars().all()), total

    async def questions_for_step(self, step: int, randomize: bool = True) -> List[Question]:
        """
        The full active pool for a step, for previews.

        Raises:
            Conflict: Fewer than two questions per competency
        """
        questions = await self._active_at(levels_for_step(step))
        competency_count = await self._competency_count()
        required = competency_count * LEVELS_PER_STEP
        if len(questions) < required or not questions:
            raise Conflict(
                f"Insufficient questions for step {step}. "
                f"Required: {required}, Available: {len(questions)}"
            )
        if randomize:
            random.shuffle(questions)
        return questions

    async def readiness(self) -> BankReadiness:
        """Questions available against questions required, per step and overall."""
        competency_count = await self._competency_count()
        result = await self.session.execute(
            select(Question.level, func.count(Question.id))
            .where(Question.is_active == True)  # noqa: E712
            .group_by(Question.level)
        )
        by_level = {level.value: 0 for level in Level}
        for level, count in result.all():
            by_level[level] = count

        per_step_required = competency_count * LEVELS_PER_STEP
        steps = []
        for step, levels in STEP_LEVELS.items():
            available = sum(by_level[level.value] for level in levels)
            steps.append(
                StepReadiness(
                    step=step,
                    levels=list(levels),
                    questions_required=per_step_required,
                    questions_available=available,
                    is_ready=per_step_required > 0 and available >= per_step_required,
                    completion=_completion(available, per_step_required),
                )
            )

        required_total = per_step_required * len(STEP_LEVELS)
        available_total = sum(by_level.values())
        return BankReadiness(
            total_competencies=competency_count,
            required_questions_total=required_total,
            total_questions_available=available_total,
            overall_completion=_completion(available_total, required_total),
            step_status=steps,
            questions_by_level=by_level,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_slot_free(
        self,
        competency: Competency,
        level: Level,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Question.id).where(
            and_(
                Question.competency_id == competency.id,
                Question.level == level.value,
                Question.is_active == True,  # noqa: E712
            )
        )
        if exclude_id:
            query = query.where(Question.id != exclude_id)
        if (await self.session.execute(query)).first():
            raise Conflict(f"Question already exists for {competency.name} at level {level.value}")

    async def _in_active_use(self, question_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(func.count(QuestionResponse.id))
            .join(AssessmentSession, QuestionResponse.session_id == AssessmentSession.id)
            .where(
                and_(
                    QuestionResponse.question_id == question_id,
                    AssessmentSession.status == SessionStatus.IN_PROGRESS,
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def _active_at(self, levels: Iterable[Level]) -> List[Question]:
        result = await self.session.execute(
            select(Question).where(
                and_(
                    Question.level.in_([level.value for level in levels]),
                    Question.is_active == True,  # noqa: E712
                )
            )
        )
        return list(result.unique().scalars().all())

    async def _competency_count(self) -> int:
        return (await self.session.execute(select(func.count(Competency.id)))).scalar() or 0
