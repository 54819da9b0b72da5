"""
Authentication endpoints.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request, status

from assessment_platform.api.deps import (
    CurrentUser,
    DbSession,
    Dispatcher,
    get_client_ip,
    get_user_agent,
)
from assessment_platform.kernel.identity.identity_service import IdentityService
from assessment_platform.schemas.auth import (
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyOtpRequest,
)
from assessment_platform.schemas.common import ApiResponse

router = APIRouter()


def _token_response(user, token_pair) -> TokenResponse:
    return TokenResponse(
        access_token=token_pair.access_token,
        refresh_token=token_pair.refresh_token,
        token_type=token_pair.token_type,
        expires_in=token_pair.expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    data: RegisterRequest,
    db: DbSession,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
):
    """
    Register a new account.

    The account starts unverified; a six-digit code is emailed to confirm it.
    """
    user, entry = await IdentityService(db).register_user(
        email=data.email,
        password=data.password,
        full_name=data.full_name,
        role=data.role,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    background_tasks.add_task(dispatcher.dispatch, entry.id)

    return ApiResponse.ok(
        UserResponse.model_validate(user),
        "Registration successful. Please check your email for the verification code.",
        status.HTTP_201_CREATED,
    )


@router.post("/verify-otp")
async def verify_otp(data: VerifyOtpRequest, db: DbSession):
    user = await IdentityService(db).verify_otp(data.email, data.otp_code)
    await db.commit()
    return ApiResponse.ok(UserResponse.model_validate(user), "Email verified successfully")


@router.post("/resend-otp")
async def resend_otp(
    data: EmailRequest,
    db: DbSession,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
):
    _, entry = await IdentityService(db).resend_otp(data.email)
    await db.commit()
    background_tasks.add_task(dispatcher.dispatch, entry.id)
    return ApiResponse.ok(message="A new verification code has been sent")


@router.post("/login")
async def login(request: Request, data: LoginRequest, db: DbSession):
    """Exchange credentials for an access and refresh token pair."""
    user, token_pair = await IdentityService(db).authenticate(
        email=data.email,
        password=data.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    await db.commit()
    return ApiResponse.ok(_token_response(user, token_pair), "Login successful")


@router.post("/refresh-token")
async def refresh_token(data: RefreshTokenRequest, db: DbSession):
    """Rotate a refresh token; the one presented stops working."""
    user, token_pair = await IdentityService(db).refresh_tokens(data.refresh_token)
    await db.commit()
    return ApiResponse.ok(_token_response(user, token_pair), "Token refreshed")


@router.post("/logout")
async def logout(
    request: Request,
    user: CurrentUser,
    db: DbSession,
    data: Optional[LogoutRequest] = None,
):
    """Revoke the given refresh token, or every token of the user when none is sent."""
    await IdentityService(db).logout(
        user.id,
        refresh_token=data.refresh_token if data else None,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return ApiResponse.ok(message="Logged out successfully")


@router.post("/forgot-password")
async def forgot_password(
    data: EmailRequest,
    db: DbSession,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
):
    entry = await IdentityService(db).forgot_password(data.email)
    await db.commit()
    background_tasks.add_task(dispatcher.dispatch, entry.id)
    return ApiResponse.ok(message="Password reset link sent to your email")


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, db: DbSession):
    await IdentityService(db).reset_password(data.token, data.new_password)
    await db.commit()
    return ApiResponse.ok(message="Password reset successfully")
