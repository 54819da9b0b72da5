"""
User profile and administration endpoints.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, Request

from assessment_platform.api.deps import AdminUser, CurrentUser, DbSession, get_client_ip
from assessment_platform.kernel.identity.identity_service import IdentityService
from assessment_platform.kernel.models.user import UserRole
from assessment_platform.schemas.auth import (
    ChangePasswordRequest,
    RoleChangeRequest,
    UserProfileUpdate,
    UserResponse,
)
from assessment_platform.schemas.common import ApiResponse, Page

router = APIRouter()


@router.get("/profile")
async def get_profile(user: CurrentUser):
    return ApiResponse.ok(UserResponse.model_validate(user), "Profile retrieved successfully")


@router.put("/profile")
async def update_profile(
    request: Request,
    data: UserProfileUpdate,
    user: CurrentUser,
    db: DbSession,
):
    updated = await IdentityService(db).update_user(
        user.id,
        full_name=data.full_name,
        email=data.email,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return ApiResponse.ok(UserResponse.model_validate(updated), "Profile updated successfully")


@router.put("/change-password")
async def change_password(
    request: Request,
    data: ChangePasswordRequest,
    user: CurrentUser,
    db: DbSession,
):
    """Change the password; every refresh token of the user is revoked."""
    await IdentityService(db).change_password(
        user.id,
        data.current_password,
        data.new_password,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return ApiResponse.ok(message="Password changed successfully")


@router.get("")
async def list_users(
    admin: AdminUser,
    db: DbSession,
    role: Optional[UserRole] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
):
    users, total = await IdentityService(db).list_users(role=role, page=page, page_size=page_size)
    return ApiResponse.ok(
        Page.create(
            [UserResponse.model_validate(u) for u in users],
            total=total,
            page=page,
            page_size=page_size,
        ),
        "Users retrieved successfully",
    )


@router.put("/{user_id}/role")
async def change_role(
    request: Request,
    user_id: uuid.UUID,
    data: RoleChangeRequest,
    admin: AdminUser,
    db: DbSession,
):
    user = await IdentityService(db).change_role(
        user_id,
        data.role,
        changed_by=admin.id,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return ApiResponse.ok(UserResponse.model_validate(user), "User role updated successfully")
