"""
Competency catalog management.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.engines.assessment.levels import Level
from assessment_platform.kernel.errors import Conflict, NotFound, ValidationError
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.models.assessment import QuestionResponse
from assessment_platform.kernel.models.competency import Competency
from assessment_platform.kernel.models.event_log import EventType
from assessment_platform.kernel.models.question import Question


class CompetencyUsage(BaseModel):
    competency_id: uuid.UUID
    competency_name: str
    total_questions: int
    questions_by_level: dict[str, int]
    can_delete: bool


class UsageSummary(BaseModel):
    total_competencies: int
    total_questions: int
    competencies_in_use: int


class CompetencyService:
    """CRUD over competencies, with name uniqueness ignoring case."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    async def create(
        self,
        name: str,
        description: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Competency:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Competency name is required")
        await self._ensure_name_free(name)

        competency = Competency(name=name, description=description)
        self.session.add(competency)
        await self.session.flush()
        await self.event_store.log(
            event_type=EventType.COMPETENCY_CREATED,
            entity_type="competency",
            entity_id=competency.id,
            user_id=actor_id,
            payload={"name": competency.name},
        )
        return competency

    async def get(self, competency_id: uuid.UUID) -> Competency:
        competency = await self.session.get(Competency, competency_id)
        if not competency:
            raise NotFound("Competency not found")
        return competency

    async def list(
        self,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[List[Competency], int]:
        """Alphabetical page, optionally filtered by a substring of name or description."""
        condition = None
        if search:
            pattern = f"%{search.strip().lower()}%"
            condition = or_(
                Competency.name_key.like(pattern),
                func.lower(Competency.description).like(pattern),
            )
        count_query = select(func.count(Competency.id))
        query = select(Competency)
        if condition is not None:
            count_query = count_query.where(condition)
            query = query.where(condition)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(
            query.order_by(Competency.name_key).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total

    async def update(
        self,
        competency_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Competency:
        competency = await self.get(competency_id)
        changes = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Competency name is required")
            if name.casefold() != competency.name_key:
                await self._ensure_name_free(name, exclude_id=competency.id)
            competency.name = name
            changes["name"] = name
        if description is not None:
            competency.description = description
            changes["description"] = description

        if changes:
            await self.session.flush()
            await self.event_store.log(
                event_type=EventType.COMPETENCY_UPDATED,
                entity_type="competency",
                entity_id=competency.id,
                user_id=actor_id,
                payload=changes,
            )
        return competency

    async def delete(self, competency_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
        """
        Remove a competency that no active question uses.

        Retired questions go with it, unless past assessments still
        reference them.
        """
        competency = await self.get(competency_id)
        active = await self._question_count(competency.id, active_only=True)
        if active:
            raise Conflict(
                f"Cannot delete competency. {active} active questions are still using this competency."
            )
        referenced = (
            await self.session.execute(
                select(func.count(QuestionResponse.id))
                .join(Question, QuestionResponse.question_id == Question.id)
                .where(Question.competency_id == competency.id)
            )
        ).scalar() or 0
        if referenced:
            raise Conflict("Cannot delete competency. Its questions are part of recorded assessments.")

        await self.session.execute(
            delete(Question)
            .where(Question.competency_id == competency.id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(competency)
        await self.event_store.log(
            event_type=EventType.COMPETENCY_DELETED,
            entity_type="competency",
            entity_id=competency_id,
            user_id=actor_id,
            payload={"name": competency.name},
        )

    async def usage(self, competency_id: uuid.UUID) -> CompetencyUsage:
        competency = await self.get(competency_id)
        by_level = await self._active_by_level([competency.id])
        counts = by_level.get(competency.id, {})
        return self._usage(competency, counts)

    async def list_with_usage(self) -> tuple[List[CompetencyUsage], UsageSummary]:
        result = await self.session.execute(select(Competency).order_by(Competency.name_key))
        competencies = list(result.scalars().all())
        by_level = await self._active_by_level([c.id for c in competencies])
        usages = [self._usage(c, by_level.get(c.id, {})) for c in competencies]
        summary = UsageSummary(
            total_competencies=len(usages),
            total_questions=sum(u.total_questions for u in usages),
            competencies_in_use=sum(1 for u in usages if u.total_questions),
        )
        return usages, summary

    @staticmethod
    def _usage(competency: Competency, counts: dict[str, int]) -> CompetencyUsage:
        questions_by_level = {level.value: counts.get(level.value, 0) for level in Level}
        total = sum(questions_by_level.values())
        return CompetencyUsage(
            competency_id=competency.id,
            competency_name=competency.name,
            total_questions=total,
            questions_by_level=questions_by_level,
            can_delete=total == 0,
        )

    async def _active_by_level(self, competency_ids: List[uuid.UUID]) -> dict[uuid.UUID, dict[str, int]]:
        if not competency_ids:
            return {}
        result = await self.session.execute(
            select(Question.competency_id, Question.level, func.count(Question.id))
            .where(
                and_(
                    Question.competency_id.in_(competency_ids),
                    Question.is_active == True,  # noqa: E712
                )
            )
            .group_by(Question.competency_id, Question.level)
        )
        counts: dict[uuid.UUID, dict[str, int]] = {}
        for competency_id, level, count in result.all():
            counts.setdefault(competency_id, {})[level] = count
        return counts

    async def _question_count(self, competency_id: uuid.UUID, active_only: bool) -> int:
        query = select(func.count(Question.id)).where(Question.competency_id == competency_id)
        if active_only:
            query = query.where(Question.is_active == True)  # noqa: E712
        return (await self.session.execute(query)).scalar() or 0

    async def _ensure_name_free(self, name: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        query = select(Competency.id).where(Competency.name_key == name.casefold())
        if exclude_id:
            query = query.where(Competency.id != exclude_id)
        if (await self.session.execute(query)).first():
            raise Conflict("Competency with this name already exists")
