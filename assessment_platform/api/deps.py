"""
FastAPI dependencies for authentication, role checks, database sessions
and notification dispatch.
"""

import uuid
from typing import Annotated, Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.database import async_session_maker, get_db
from assessment_platform.engines.certificates.renderer import CertificateRenderer
from assessment_platform.engines.notifications.dispatcher import NotificationDispatcher
from assessment_platform.kernel.identity.identity_service import IdentityService
from assessment_platform.kernel.identity.jwt import verify_access_token
from assessment_platform.kernel.models.user import User, UserRole
from assessment_platform.logging_config import user_id_var


# Security scheme
security = HTTPBearer(auto_error=False)


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_session_factory() -> Callable[[], AsyncSession]:
    """Session factory for work that outlives the request session."""
    return async_session_maker


def get_certificate_renderer() -> CertificateRenderer:
    return CertificateRenderer()


Renderer = Annotated[CertificateRenderer, Depends(get_certificate_renderer)]


def get_dispatcher(
    session_factory: Annotated[Callable[[], AsyncSession], Depends(get_session_factory)],
    renderer: Renderer,
) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, renderer=renderer)


Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await IdentityService(db).get_user_by_id(uuid.UUID(payload.sub))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    user_id_var.set(str(user.id))
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_verified(user: CurrentUser) -> User:
    """Require a verified email address."""
    if not user.email_verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email verification required",
        )
    return user


VerifiedUser = Annotated[User, Depends(require_verified)]


def require_role(*roles: UserRole) -> Callable:
    """Dependency factory: the verified user must hold one of ``roles``."""
    allowed = {role.value for role in roles}

    async def checker(user: VerifiedUser) -> User:
        role = user.role.value if isinstance(user.role, UserRole) else user.role
        if role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return checker


StudentUser = Annotated[User, Depends(require_role(UserRole.STUDENT))]
AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")
