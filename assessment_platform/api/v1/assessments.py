"""
Assessment endpoints: eligibility, the question-by-question session flow,
completion and history.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks

from assessment_platform.api.deps import DbSession, Dispatcher, StudentUser, VerifiedUser
from assessment_platform.engines.assessment.engine import AssessmentEngine
from assessment_platform.schemas.assessment import (
    AnswerResponse,
    CompleteRequest,
    CompletionResponse,
    CurrentQuestionResponse,
    EligibilityResponse,
    HistoryResponse,
    NavigateRequest,
    NavigateResponse,
    ResultsResponse,
    SessionInfoResponse,
    SkipResponse,
    StartRequest,
    StartResponse,
    SubmitAnswerRequest,
)
from assessment_platform.schemas.common import ApiResponse

router = APIRouter()


@router.get("/eligibility/{step}")
async def check_eligibility(step: int, user: VerifiedUser, db: DbSession):
    eligibility = await AssessmentEngine(db).check_eligibility(user.id, step)
    return ApiResponse.ok(
        EligibilityResponse.model_validate(eligibility),
        f"User is eligible for Step {step}",
    )


@router.post("/start")
async def start_assessment(data: StartRequest, user: StudentUser, db: DbSession):
    """Start a step, or resume the session already in progress for it."""
    started = await AssessmentEngine(db).start(user.id, data.step)
    message = "Test resumed" if started.resumed else "Test started successfully"
    return ApiResponse.ok(StartResponse.model_validate(started), message)


@router.get("/history")
async def assessment_history(user: StudentUser, db: DbSession):
    history = await AssessmentEngine(db).history(user.id)
    return ApiResponse.ok(HistoryResponse.model_validate(history), "Test history retrieved successfully")


@router.get("/{session_id}")
async def get_assessment(session_id: uuid.UUID, user: StudentUser, db: DbSession):
    info = await AssessmentEngine(db).info(user.id, session_id)
    return ApiResponse.ok(SessionInfoResponse.model_validate(info), "Test retrieved successfully")


@router.get("/{session_id}/results")
async def get_results(session_id: uuid.UUID, user: StudentUser, db: DbSession):
    results = await AssessmentEngine(db).results(user.id, session_id)
    return ApiResponse.ok(ResultsResponse.model_validate(results), "Test results retrieved successfully")


@router.get("/{session_id}/current-question")
async def current_question(session_id: uuid.UUID, user: StudentUser, db: DbSession):
    current = await AssessmentEngine(db).get_current_question(user.id, session_id)
    return ApiResponse.ok(
        CurrentQuestionResponse.model_validate(current),
        "Current question retrieved successfully",
    )


@router.post("/{session_id}/submit-answer")
async def submit_answer(
    session_id: uuid.UUID,
    data: SubmitAnswerRequest,
    user: StudentUser,
    db: DbSession,
):
    result = await AssessmentEngine(db).submit_answer(
        user.id,
        session_id,
        data.question_id,
        data.selected_option_index,
        time_spent=data.time_spent,
    )
    return ApiResponse.ok(AnswerResponse.model_validate(result), "Answer submitted successfully")


@router.post("/{session_id}/skip-question")
async def skip_question(session_id: uuid.UUID, user: StudentUser, db: DbSession):
    result = await AssessmentEngine(db).skip_question(user.id, session_id)
    return ApiResponse.ok(SkipResponse.model_validate(result), "Question skipped successfully")


@router.post("/{session_id}/navigate")
async def navigate(
    session_id: uuid.UUID,
    data: NavigateRequest,
    user: StudentUser,
    db: DbSession,
):
    result = await AssessmentEngine(db).navigate(user.id, session_id, data.direction)
    return ApiResponse.ok(NavigateResponse.model_validate(result), f"Navigated {data.direction.value}")


@router.post("/{session_id}/complete")
async def complete_assessment(
    session_id: uuid.UUID,
    user: StudentUser,
    db: DbSession,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
    data: Optional[CompleteRequest] = None,
):
    """
    Score the session and apply its outcome.

    The certificate email is sent after the response, from the outbox row
    the completion committed.
    """
    completion = await AssessmentEngine(db).complete(
        user.id,
        session_id,
        total_time_spent=data.total_time_spent if data else 0,
    )
    if completion.notification_id is not None:
        background_tasks.add_task(dispatcher.dispatch, completion.notification_id)
    return ApiResponse.ok(
        CompletionResponse.model_validate(completion),
        "Test completed successfully",
    )
