"""
Question bank endpoints.

The correct option index is only ever returned to admins.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status

from assessment_platform.api.deps import AdminUser, DbSession, VerifiedUser, is_admin
from assessment_platform.engines.assessment.levels import Level
from assessment_platform.engines.catalog.question_bank import QuestionBank
from assessment_platform.kernel.errors import ValidationError
from assessment_platform.schemas.catalog import (
    AdminQuestionResponse,
    BankReadinessResponse,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
)
from assessment_platform.schemas.common import ApiResponse, Page

router = APIRouter()


def _present(question, viewer):
    if is_admin(viewer):
        return AdminQuestionResponse.from_question(question)
    return QuestionResponse.from_question(question)


@router.get("")
async def list_questions(
    user: VerifiedUser,
    db: DbSession,
    competency_id: Optional[uuid.UUID] = Query(None, alias="competencyId"),
    level: Optional[Level] = None,
    step: Optional[int] = Query(None, ge=1, le=3),
    is_active: bool = Query(True, alias="isActive"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100, alias="pageSize"),
):
    items, total = await QuestionBank(db).list_questions(
        competency_id=competency_id,
        level=level,
        step=step,
        is_active=is_active,
        page=page,
        page_size=page_size,
    )
    return ApiResponse.ok(
        Page.create([_present(q, user) for q in items], total=total, page=page, page_size=page_size),
        "Questions retrieved successfully",
    )


@router.get("/assessment/status")
async def bank_readiness(admin: AdminUser, db: DbSession):
    """How many questions each step has against how many it needs."""
    readiness = await QuestionBank(db).readiness()
    return ApiResponse.ok(
        BankReadinessResponse.model_validate(readiness),
        "Assessment readiness retrieved successfully",
    )


@router.get("/step/{step}")
async def questions_for_step(
    step: int,
    user: VerifiedUser,
    db: DbSession,
    randomize: bool = True,
):
    if step not in (1, 2, 3):
        raise ValidationError("Step must be 1, 2 or 3")
    questions = await QuestionBank(db).questions_for_step(step, randomize=randomize)
    return ApiResponse.ok(
        [_present(q, user) for q in questions],
        f"Questions for step {step} retrieved successfully",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_question(data: QuestionCreate, admin: AdminUser, db: DbSession):
    question = await QuestionBank(db).create_question(
        competency_id=data.competency_id,
        level=data.level,
        text=data.question_text,
        options=data.options,
        correct_option_index=data.correct_option_index,
        difficulty=data.difficulty,
        created_by=admin.id,
    )
    await db.commit()
    return ApiResponse.ok(
        AdminQuestionResponse.from_question(question),
        "Question created successfully",
        status.HTTP_201_CREATED,
    )


@router.get("/{question_id}")
async def get_question(question_id: uuid.UUID, user: VerifiedUser, db: DbSession):
    question = await QuestionBank(db).get_question(question_id)
    return ApiResponse.ok(_present(question, user), "Question retrieved successfully")


@router.put("/{question_id}")
async def update_question(
    question_id: uuid.UUID,
    data: QuestionUpdate,
    admin: AdminUser,
    db: DbSession,
):
    """
    Edit a question. If a running assessment holds it, the edit lands on a
    new row that supersedes it, and the response carries the new id.
    """
    question = await QuestionBank(db).update_question(
        question_id,
        actor_id=admin.id,
        competency_id=data.competency_id,
        level=data.level,
        text=data.question_text,
        options=data.options,
        correct_option_index=data.correct_option_index,
        difficulty=data.difficulty,
        is_active=data.is_active,
    )
    await db.commit()
    return ApiResponse.ok(AdminQuestionResponse.from_question(question), "Question updated successfully")


@router.delete("/{question_id}")
async def delete_question(question_id: uuid.UUID, admin: AdminUser, db: DbSession):
    await QuestionBank(db).delete_question(question_id, actor_id=admin.id)
    await db.commit()
    return ApiResponse.ok(message="Question deleted successfully")
