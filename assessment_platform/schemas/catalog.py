"""
Competency and question schemas.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from assessment_platform.engines.assessment.levels import Level
from assessment_platform.schemas.common import CamelModel


class CompetencyCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class CompetencyUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class CompetencyResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CompetencyUsageResponse(CamelModel):
    competency_id: uuid.UUID
    competency_name: str
    total_questions: int
    questions_by_level: Dict[str, int]
    can_delete: bool


class UsageSummaryResponse(CamelModel):
    total_competencies: int
    total_questions: int
    competencies_in_use: int


class CompetenciesWithUsage(CamelModel):
    competencies: List[CompetencyUsageResponse]
    summary: UsageSummaryResponse


class QuestionCreate(CamelModel):
    competency_id: uuid.UUID
    level: Level
    question_text: str = Field(..., min_length=1)
    options: List[str]
    correct_option_index: int
    difficulty: Optional[int] = Field(None, ge=1, le=5)


class QuestionUpdate(CamelModel):
    competency_id: Optional[uuid.UUID] = None
    level: Optional[Level] = None
    question_text: Optional[str] = Field(None, min_length=1)
    options: Optional[List[str]] = None
    correct_option_index: Optional[int] = None
    difficulty: Optional[int] = Field(None, ge=1, le=5)
    is_active: Optional[bool] = None


class QuestionResponse(CamelModel):
    """A question without its answer key."""

    id: uuid.UUID
    competency_id: uuid.UUID
    competency_name: Optional[str] = None
    level: Level
    question_text: str
    options: List[str]
    difficulty: Optional[int] = None
    is_active: bool
    supersedes_id: Optional[uuid.UUID] = None
    created_at: datetime

    @classmethod
    def from_question(cls, question) -> "QuestionResponse":
        return cls(**_question_fields(question))


class AdminQuestionResponse(QuestionResponse):
    correct_option_index: int

    @classmethod
    def from_question(cls, question) -> "AdminQuestionResponse":
        return cls(
            **_question_fields(question),
            correct_option_index=question.correct_option_index,
        )


def _question_fields(question) -> dict:
    return {
        "id": question.id,
        "competency_id": question.competency_id,
        "competency_name": question.competency.name if question.competency else None,
        "level": question.level,
        "question_text": question.text,
        "options": list(question.options),
        "difficulty": question.difficulty,
        "is_active": question.is_active,
        "supersedes_id": question.supersedes_id,
        "created_at": question.created_at,
    }


class StepReadinessResponse(CamelModel):
    step: int
    levels: List[Level]
    questions_required: int
    questions_available: int
    is_ready: bool
    completion: int


class BankReadinessResponse(CamelModel):
    total_competencies: int
    required_questions_total: int
    total_questions_available: int
    overall_completion: int
    step_status: List[StepReadinessResponse]
    questions_by_level: Dict[str, int]
