"""
Competency catalog endpoints.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status

from assessment_platform.api.deps import AdminUser, DbSession, VerifiedUser
from assessment_platform.engines.catalog.competency_service import CompetencyService
from assessment_platform.schemas.catalog import (
    CompetenciesWithUsage,
    CompetencyCreate,
    CompetencyResponse,
    CompetencyUpdate,
    CompetencyUsageResponse,
)
from assessment_platform.schemas.common import ApiResponse, Page

router = APIRouter()


@router.get("")
async def list_competencies(
    user: VerifiedUser,
    db: DbSession,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100, alias="pageSize"),
):
    items, total = await CompetencyService(db).list(search=search, page=page, page_size=page_size)
    return ApiResponse.ok(
        Page.create(
            [CompetencyResponse.model_validate(c) for c in items],
            total=total,
            page=page,
            page_size=page_size,
        ),
        "Competencies retrieved successfully",
    )


@router.get("/with-usage")
async def list_with_usage(admin: AdminUser, db: DbSession):
    usages, summary = await CompetencyService(db).list_with_usage()
    return ApiResponse.ok(
        CompetenciesWithUsage.model_validate({"competencies": usages, "summary": summary}),
        "Competencies with usage retrieved successfully",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_competency(data: CompetencyCreate, admin: AdminUser, db: DbSession):
    competency = await CompetencyService(db).create(
        data.name,
        description=data.description,
        actor_id=admin.id,
    )
    await db.commit()
    return ApiResponse.ok(
        CompetencyResponse.model_validate(competency),
        "Competency created successfully",
        status.HTTP_201_CREATED,
    )


@router.get("/{competency_id}")
async def get_competency(competency_id: uuid.UUID, user: VerifiedUser, db: DbSession):
    competency = await CompetencyService(db).get(competency_id)
    return ApiResponse.ok(CompetencyResponse.model_validate(competency), "Competency retrieved successfully")


@router.put("/{competency_id}")
async def update_competency(
    competency_id: uuid.UUID,
    data: CompetencyUpdate,
    admin: AdminUser,
    db: DbSession,
):
    competency = await CompetencyService(db).update(
        competency_id,
        name=data.name,
        description=data.description,
        actor_id=admin.id,
    )
    await db.commit()
    return ApiResponse.ok(CompetencyResponse.model_validate(competency), "Competency updated successfully")


@router.delete("/{competency_id}")
async def delete_competency(competency_id: uuid.UUID, admin: AdminUser, db: DbSession):
    """Delete a competency no active question uses; otherwise 409."""
    await CompetencyService(db).delete(competency_id, actor_id=admin.id)
    await db.commit()
    return ApiResponse.ok(message="Competency deleted successfully")


@router.get("/{competency_id}/usage")
async def competency_usage(competency_id: uuid.UUID, admin: AdminUser, db: DbSession):
    usage = await CompetencyService(db).usage(competency_id)
    return ApiResponse.ok(CompetencyUsageResponse.model_validate(usage), "Competency usage retrieved successfully")
