"""
Authentication and user schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from assessment_platform.engines.assessment.levels import Level
from assessment_platform.kernel.models.user import AssessmentStatus, UserRole
from assessment_platform.schemas.common import CamelModel


def check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class RegisterRequest(CamelModel):
    """User registration request. Admin accounts cannot self-register."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = UserRole.STUDENT

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise ValueError("Admin accounts cannot be self-registered")
        return v


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp_code: str = Field(..., min_length=6, max_length=6)


class EmailRequest(CamelModel):
    """Body carrying only an email (resend-otp, forgot-password)."""

    email: EmailStr


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class UserResponse(CamelModel):
    """User profile response."""

    id: uuid.UUID
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    email_verified: bool
    assessment_status: AssessmentStatus
    highest_level_achieved: Optional[Level] = None
    current_step: int
    created_at: datetime


class UserProfileUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None


class RoleChangeRequest(CamelModel):
    role: UserRole


class TokenResponse(CamelModel):
    """Authentication token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
