"""
Identity service for user management operations.
"""

import secrets
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.config import get_settings
from assessment_platform.engines.notifications.outbox import Outbox, TemplateKey
from assessment_platform.kernel.errors import (
    Conflict,
    InvalidState,
    NotFound,
    Unauthorized,
    ValidationError,
)
from assessment_platform.kernel.events.event_store import EventStore
from assessment_platform.kernel.identity.jwt import JWTManager, TokenPair
from assessment_platform.kernel.identity.password import PasswordHasher, hash_password, verify_password
from assessment_platform.kernel.models.base import ensure_utc, utcnow
from assessment_platform.kernel.models.event_log import EventType
from assessment_platform.kernel.models.notification import NotificationOutbox
from assessment_platform.kernel.models.user import RefreshToken, User, UserRole
from assessment_platform.logging_config import get_logger

logger = get_logger(__name__)


def generate_otp() -> str:
    """Six-digit numeric one-time code."""
    return f"{secrets.randbelow(1_000_000):06d}"


def _role_value(role) -> str:
    # Loaded rows carry plain strings; freshly built ones carry the enum
    return role.value if hasattr(role, "value") else role


class IdentityService:
    """
    User identity operations: registration and email verification, login
    with rotated refresh tokens, password management and role changes.

    Methods that queue an email return the outbox row; the caller commits
    and then hands the row id to the notification dispatcher.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()
        self.jwt_manager = JWTManager()
        self.event_store = EventStore(session)
        self.outbox = Outbox(session)

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    async def register_user(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole = UserRole.STUDENT,
        ip_address: Optional[str] = None,
    ) -> tuple[User, NotificationOutbox]:
        """
        Create an unverified account and queue its verification code.

        Raises:
            Conflict: If the email is already registered
        """
        if await self.get_user_by_email(email):
            raise Conflict("User with this email already exists")

        user = User(
            email=email.lower().strip(),
            password_hash=hash_password(password),
            full_name=full_name.strip(),
            role=role,
            email_verified=False,
        )
        otp = self._issue_otp(user)
        self.session.add(user)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"email": user.email, "role": _role_value(user.role)},
            ip_address=ip_address,
        )
        entry = await self._queue_otp_email(user, otp)
        logger.info("User registered", extra={"user_id": str(user.id)})
        return user, entry

    async def verify_otp(self, email: str, otp_code: str) -> User:
        """Mark the email verified when the code matches and has not expired."""
        user = await self._require_user_by_email(email)
        if user.email_verified:
            raise InvalidState("Email is already verified")
        if not user.otp_code:
            raise ValidationError("No OTP found for this user")
        if ensure_utc(user.otp_expires_at) <= utcnow():
            raise ValidationError("OTP has expired")
        if not secrets.compare_digest(user.otp_code, otp_code.strip()):
            raise ValidationError("Invalid OTP code")

        user.email_verified = True
        user.otp_code = None
        user.otp_expires_at = None
        await self.event_store.log(
            event_type=EventType.USER_EMAIL_VERIFIED,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
        )
        return user

    async def resend_otp(self, email: str) -> tuple[User, NotificationOutbox]:
        user = await self._require_user_by_email(email)
        if user.email_verified:
            raise InvalidState("Email is already verified")
        otp = self._issue_otp(user)
        entry = await self._queue_otp_email(user, otp)
        return user, entry

    def _issue_otp(self, user: User) -> str:
        otp = generate_otp()
        user.otp_code = otp
        user.otp_expires_at = utcnow() + timedelta(minutes=self.settings.otp_expire_minutes)
        return otp

    async def _queue_otp_email(self, user: User, otp: str) -> NotificationOutbox:
        return await self.outbox.enqueue(
            TemplateKey.EMAIL_VERIFICATION,
            user.email,
            {
                "full_name": user.full_name,
                "otp_code": otp,
                "expires_minutes": self.settings.otp_expire_minutes,
            },
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def authenticate(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[User, TokenPair]:
        """
        Check credentials and issue a token pair.

        Raises:
            Unauthorized: Unknown email, wrong password or disabled account
        """
        user = await self.get_user_by_email(email)
        if not user or not user.is_active or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password")

        if PasswordHasher.needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)

        token_pair = await self._issue_tokens(user)
        await self.event_store.log(
            event_type=EventType.USER_LOGGED_IN,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
            payload={"method": "password"},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return user, token_pair

    async def refresh_tokens(self, refresh_token: str) -> tuple[User, TokenPair]:
        """
        Exchange a refresh token for a new pair; the old token is revoked.

        Raises:
            Unauthorized: Token invalid, expired, revoked or user disabled
        """
        payload = self.jwt_manager.verify_refresh_token(refresh_token)
        if not payload:
            raise Unauthorized("Invalid or expired refresh token")

        result = await self.session.execute(
            select(RefreshToken).where(
                and_(
                    RefreshToken.token_hash == JWTManager.hash_token(refresh_token),
                    RefreshToken.revoked == False,  # noqa: E712
                    RefreshToken.expires_at > utcnow(),
                )
            )
        )
        token_record = result.scalar_one_or_none()
        if not token_record:
            raise Unauthorized("Invalid or expired refresh token")

        user = await self.get_user_by_id(uuid.UUID(payload.sub))
        if not user or not user.is_active:
            raise Unauthorized("Invalid or expired refresh token")

        token_record.revoked = True
        return user, await self._issue_tokens(user)

    async def _issue_tokens(self, user: User) -> TokenPair:
        token_pair, refresh_exp = self.jwt_manager.create_token_pair(
            user_id=user.id,
            email=user.email,
            role=_role_value(user.role),
        )
        self.session.add(
            RefreshToken(
                user_id=user.id,
                token_hash=JWTManager.hash_token(token_pair.refresh_token),
                expires_at=refresh_exp,
            )
        )
        return token_pair

    async def logout(
        self,
        user_id: uuid.UUID,
        refresh_token: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """Revoke one refresh token, or all of the user's tokens when none is given."""
        query = select(RefreshToken).where(
            and_(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked == False,  # noqa: E712
            )
        )
        if refresh_token:
            query = query.where(RefreshToken.token_hash == JWTManager.hash_token(refresh_token))
        result = await self.session.execute(query)
        for token in result.scalars().all():
            token.revoked = True

        await self.event_store.log(
            event_type=EventType.USER_LOGGED_OUT,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            payload={"revoke_all": refresh_token is None},
            ip_address=ip_address,
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> NotificationOutbox:
        """Issue a one-hour reset token and queue the reset link email."""
        user = await self._require_user_by_email(email)
        token = secrets.token_hex(32)
        user.reset_token_hash = JWTManager.hash_token(token)
        user.reset_expires_at = utcnow() + timedelta(
            minutes=self.settings.reset_token_expire_minutes
        )
        reset_url = f"{self.settings.frontend_url.rstrip('/')}/reset-password?token={token}"
        return await self.outbox.enqueue(
            TemplateKey.PASSWORD_RESET,
            user.email,
            {"full_name": user.full_name, "reset_url": reset_url},
        )

    async def reset_password(self, token: str, new_password: str) -> User:
        result = await self.session.execute(
            select(User).where(
                and_(
                    User.reset_token_hash == JWTManager.hash_token(token),
                    User.reset_expires_at > utcnow(),
                )
            )
        )
        user = result.scalar_one_or_none()
        if not user:
            raise ValidationError("Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.reset_token_hash = None
        user.reset_expires_at = None
        await self.logout(user.id)
        await self.event_store.log(
            event_type=EventType.USER_PASSWORD_RESET,
            entity_type="user",
            entity_id=user.id,
            user_id=user.id,
        )
        return user

    async def change_password(
        self,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
    ) -> None:
        user = await self._require_user(user_id)
        if not verify_password(current_password, user.password_hash):
            raise Unauthorized("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        # Existing sessions end with the old password
        await self.logout(user_id, ip_address=ip_address)
        await self.event_store.log(
            event_type=EventType.USER_PASSWORD_CHANGED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            ip_address=ip_address,
        )

    # ------------------------------------------------------------------
    # Profile and administration
    # ------------------------------------------------------------------

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.email == email.lower().strip())
        )
        return result.scalar_one_or_none()

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def _require_user_by_email(self, email: str) -> User:
        user = await self.get_user_by_email(email)
        if not user:
            raise NotFound("User not found")
        return user

    async def update_user(
        self,
        user_id: uuid.UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> User:
        """Update profile fields; a changed email must be unique."""
        user = await self._require_user(user_id)
        changes = {}

        if full_name is not None:
            user.full_name = full_name.strip()
            changes["full_name"] = user.full_name

        if email is not None:
            new_email = email.lower().strip()
            existing = await self.get_user_by_email(new_email)
            if existing and existing.id != user_id:
                raise Conflict("Email already in use")
            user.email = new_email
            changes["email"] = new_email

        if changes:
            await self.event_store.log(
                event_type=EventType.USER_UPDATED,
                entity_type="user",
                entity_id=user_id,
                user_id=user_id,
                payload=changes,
                ip_address=ip_address,
            )
        return user

    async def change_role(
        self,
        user_id: uuid.UUID,
        new_role: UserRole,
        changed_by: uuid.UUID,
        ip_address: Optional[str] = None,
    ) -> User:
        """
        Change a user's role (admin only).

        Raises:
            NotFound: Unknown user
            ValidationError: The user already has that role
        """
        user = await self._require_user(user_id)
        old_role = _role_value(user.role)
        if old_role == new_role.value:
            raise ValidationError(f"User already has the role: {new_role.value}")

        user.role = new_role
        await self.event_store.log(
            event_type=EventType.USER_ROLE_CHANGED,
            entity_type="user",
            entity_id=user_id,
            user_id=changed_by,
            payload={"previous_role": old_role, "new_role": new_role.value},
            ip_address=ip_address,
        )
        logger.info(
            "User role changed",
            extra={"target_user_id": str(user_id), "new_role": new_role.value},
        )
        return user

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[List[User], int]:
        """Users newest first, optionally filtered by role; returns (page, total)."""
        query = select(User)
        count_query = select(func.count(User.id))
        if role is not None:
            query = query.where(User.role == role.value)
            count_query = count_query.where(User.role == role.value)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(
            query.order_by(User.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total
