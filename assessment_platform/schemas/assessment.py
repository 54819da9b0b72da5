"""
Assessment and certificate schemas.

Response models mirror the engine's result models with camelCase keys and
are filled with ``model_validate(result)``.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from assessment_platform.engines.assessment.engine import Direction
from assessment_platform.engines.assessment.levels import Level
from assessment_platform.kernel.models.assessment import SessionStatus
from assessment_platform.kernel.models.user import AssessmentStatus
from assessment_platform.schemas.common import CamelModel


# Requests

class StartRequest(CamelModel):
    step: int = Field(..., ge=1, le=3)


class SubmitAnswerRequest(CamelModel):
    question_id: uuid.UUID
    selected_option_index: int = Field(..., ge=0, le=3)
    time_spent: int = Field(0, ge=0)


class NavigateRequest(CamelModel):
    direction: Direction


class CompleteRequest(CamelModel):
    total_time_spent: int = Field(0, ge=0)


# Responses

class EligibilityResponse(CamelModel):
    eligible: bool
    step: int
    current_level: Optional[Level] = None


class StartResponse(CamelModel):
    session_id: uuid.UUID
    current_question_index: int
    total_questions: int
    resumed: bool


class QuestionViewResponse(CamelModel):
    id: uuid.UUID
    competency_id: uuid.UUID
    competency: Optional[str] = None
    level: Level
    text: str
    options: List[str]


class ProgressResponse(CamelModel):
    current_index: int
    total_questions: int
    questions_answered: int
    progress_percentage: int
    time_remaining: int
    is_expired: bool
    is_last_question: bool
    has_next_question: bool


class NavigationResponse(CamelModel):
    can_go_next: bool
    can_go_previous: bool
    can_skip: bool
    can_submit_test: bool


class CurrentQuestionResponse(CamelModel):
    question: QuestionViewResponse
    progress: ProgressResponse
    navigation: NavigationResponse


class AnswerResponse(CamelModel):
    is_correct: bool
    current_question_index: int
    is_last_question: bool
    auto_advanced: bool


class SkipResponse(CamelModel):
    current_question_index: int
    is_last_question: bool
    auto_advanced: bool


class NavigateResponse(CamelModel):
    current_question_index: int
    direction: Direction


class TestOutcomeResponse(CamelModel):
    id: uuid.UUID
    step: int
    status: SessionStatus
    correct_answers: int
    total_questions: int
    score: int
    level_achieved: Optional[Level] = None
    can_proceed_to_next_step: bool
    blocks_retake: bool


class CertificateSummaryResponse(CamelModel):
    id: uuid.UUID
    level_achieved: Level
    email_scheduled: bool


class CompletionResponse(CamelModel):
    test: TestOutcomeResponse
    certificate: Optional[CertificateSummaryResponse] = None


class SessionInfoResponse(CamelModel):
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


class StepAvailabilityResponse(CamelModel):
    step: int
    levels: List[Level]
    available: bool
    passed: bool


class UserStatusResponse(CamelModel):
    highest_level_achieved: Optional[Level] = None
    assessment_status: AssessmentStatus
    current_step: int


class HistoryResponse(CamelModel):
    tests: List[SessionInfoResponse]
    step_availability: List[StepAvailabilityResponse]
    user_status: UserStatusResponse


class ResultsResponse(CamelModel):
    test: TestOutcomeResponse
    certificate: Optional[CertificateSummaryResponse] = None


class CertificateResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    session_id: uuid.UUID
    level_achieved: str
    score: int
    step: int
    issued_at: datetime
