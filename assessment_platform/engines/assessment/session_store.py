"""
Session Store - persistence for assessment sessions and their responses.
"""

import uuid
from typing import List, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.config import get_settings
from assessment_platform.engines.assessment.levels import Level
from assessment_platform.kernel.errors import Conflict
from assessment_platform.kernel.models.assessment import (
    AssessmentSession,
    QuestionResponse,
    SessionStatus,
)
from assessment_platform.kernel.models.base import utcnow


class SessionStore:
    """
    Reads and writes AssessmentSession and QuestionResponse rows.

    The store flushes but never commits; the engine owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_session(
        self,
        user_id: uuid.UUID,
        step: int,
        levels: Sequence[Level],
        question_order: Sequence[uuid.UUID],
    ) -> AssessmentSession:
        """
        Insert a new in-progress session.

        Raises:
            Conflict: Another in-progress session exists for (user, step).
                The partial unique index decides, so concurrent creators
                cannot both succeed. The caller must roll back.
        """
        n = len(question_order)
        test_session = AssessmentSession(
            user_id=user_id,
            step=step,
            levels_tested=[level.value for level in levels],
            question_order=[str(qid) for qid in question_order],
            total_questions=n,
            current_question_index=0,
            current_question_id=question_order[0],
            furthest_question_index=0,
            questions_answered=0,
            status=SessionStatus.IN_PROGRESS,
            started_at=utcnow(),
            time_limit_seconds=n * get_settings().seconds_per_question,
        )
        self.session.add(test_session)
        try:
            await self.session.flush()
        except IntegrityError:
            raise Conflict(f"An assessment for step {step} is already in progress") from None
        return test_session

    async def create_responses(
        self,
        test_session: AssessmentSession,
        question_order: Sequence[uuid.UUID],
    ) -> List[QuestionResponse]:
        """One unresolved response per question; position 0 starts its clock now."""
        now = utcnow()
        responses = [
            QuestionResponse(
                session_id=test_session.id,
                question_id=question_id,
                position=position,
                question_started_at=now if position == 0 else None,
            )
            for position, question_id in enumerate(question_order)
        ]
        self.session.add_all(responses)
        test_session.last_question_started_at = now
        await self.session.flush()
        return responses

    async def get_session(
        self,
        session_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> Optional[AssessmentSession]:
        return await self.session.get(AssessmentSession, session_id, populate_existing=refresh)

    async def find_in_progress(self, user_id: uuid.UUID, step: int) -> Optional[AssessmentSession]:
        result = await self.session.execute(
            select(AssessmentSession).where(
                and_(
                    AssessmentSession.user_id == user_id,
                    AssessmentSession.step == step,
                    AssessmentSession.status == SessionStatus.IN_PROGRESS,
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def has_passed_step(self, user_id: uuid.UUID, step: int) -> bool:
        """True if some completed session for ``step`` unlocked the next one."""
        result = await self.session.execute(
            select(func.count(AssessmentSession.id)).where(
                and_(
                    AssessmentSession.user_id == user_id,
                    AssessmentSession.step == step,
                    AssessmentSession.status == SessionStatus.COMPLETED,
                    AssessmentSession.can_proceed_to_next_step == True,  # noqa: E712
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def sessions_for_user(self, user_id: uuid.UUID) -> List[AssessmentSession]:
        """All of a user's sessions, newest first."""
        result = await self.session.execute(
            select(AssessmentSession)
            .where(AssessmentSession.user_id == user_id)
            .order_by(AssessmentSession.started_at.desc())
        )
        return list(result.scalars().all())

    async def get_response(self, session_id: uuid.UUID, position: int) -> Optional[QuestionResponse]:
        result = await self.session.execute(
            select(QuestionResponse).where(
                and_(
                    QuestionResponse.session_id == session_id,
                    QuestionResponse.position == position,
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_response_for_question(
        self,
        session_id: uuid.UUID,
        question_id: uuid.UUID,
    ) -> Optional[QuestionResponse]:
        result = await self.session.execute(
            select(QuestionResponse).where(
                and_(
                    QuestionResponse.session_id == session_id,
                    QuestionResponse.question_id == question_id,
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def responses(self, session_id: uuid.UUID) -> List[QuestionResponse]:
        result = await self.session.execute(
            select(QuestionResponse)
            .where(QuestionResponse.session_id == session_id)
            .order_by(QuestionResponse.position)
        )
        return list(result.scalars().all())

    async def count_correct(self, session_id: uuid.UUID) -> int:
        """Correct answers across every response; unresolved rows count as wrong."""
        result = await self.session.execute(
            select(func.count(QuestionResponse.id)).where(
                and_(
                    QuestionResponse.session_id == session_id,
                    QuestionResponse.is_correct == True,  # noqa: E712
                )
            )
        )
        return result.scalar() or 0
