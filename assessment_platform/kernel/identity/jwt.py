"""
JWT token management for authentication.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from assessment_platform.config import get_settings


class AccessTokenPayload(BaseModel):
    """Decoded access token claims."""
    
    sub: str  # User ID
    email: str
    role: str
    exp: datetime
    iat: datetime
    jti: str
    
    class Config:
        from_attributes = True


class RefreshTokenPayload(BaseModel):
    """Decoded refresh token claims."""
    
    sub: str
    exp: datetime
    iat: datetime
    jti: str
    type: str = "refresh"


class TokenPair(BaseModel):
    """Access and refresh token pair."""
    
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Seconds until the access token expires


class JWTManager:
    """
    Issues and verifies signed tokens.

    Access tokens are short-lived bearer credentials. Refresh tokens are
    long-lived, stored hashed, and rotated on every use.
    """
    
    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
        refresh_token_expire_days: Optional[int] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.access_token_expire_minutes
        )
        self.refresh_token_expire_days = (
            refresh_token_expire_days or settings.refresh_token_expire_days
        )
    
    def _encode(self, claims: dict, lifetime: timedelta) -> tuple[str, datetime]:
        now = datetime.now(timezone.utc)
        expire = now + lifetime
        token = jwt.encode(
            {**claims, "iat": now, "exp": expire, "jti": str(uuid.uuid4())},
            self.secret_key,
            algorithm=self.algorithm,
        )
        return token, expire

    def _decode(self, token: str, expected_type: str) -> Optional[dict]:
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        if claims.get("type") != expected_type:
            return None
        return claims

    def create_access_token(
        self,
        user_id: uuid.UUID,
        email: str,
        role: str,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime]:
        """Returns (token, expires_at)."""
        return self._encode(
            {"sub": str(user_id), "email": email, "role": role, "type": "access"},
            expires_delta or timedelta(minutes=self.access_token_expire_minutes),
        )
    
    def create_refresh_token(
        self,
        user_id: uuid.UUID,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime]:
        """Returns (token, expires_at)."""
        return self._encode(
            {"sub": str(user_id), "type": "refresh"},
            expires_delta or timedelta(days=self.refresh_token_expire_days),
        )
    
    def create_token_pair(self, user_id: uuid.UUID, email: str, role: str) -> tuple[TokenPair, datetime]:
        """
        Issue an access/refresh pair.

        Returns:
            (TokenPair, refresh_expires_at) so the caller can persist the
            refresh token record.
        """
        access_token, access_exp = self.create_access_token(user_id, email, role)
        refresh_token, refresh_exp = self.create_refresh_token(user_id)
        expires_in = int((access_exp - datetime.now(timezone.utc)).total_seconds())
        pair = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
        return pair, refresh_exp
    
    def verify_access_token(self, token: str) -> Optional[AccessTokenPayload]:
        """Decode an access token; None if invalid, expired or of the wrong type."""
        claims = self._decode(token, "access")
        if claims is None:
            return None
        return AccessTokenPayload(
            sub=claims["sub"],
            email=claims["email"],
            role=claims["role"],
            exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            jti=claims["jti"],
        )
    
    def verify_refresh_token(self, token: str) -> Optional[RefreshTokenPayload]:
        """Decode a refresh token; None if invalid, expired or of the wrong type."""
        claims = self._decode(token, "refresh")
        if claims is None:
            return None
        return RefreshTokenPayload(
            sub=claims["sub"],
            exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            jti=claims["jti"],
        )
    
    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 hex digest used to store tokens at rest."""
        return hashlib.sha256(token.encode()).hexdigest()


def verify_access_token(token: str) -> Optional[AccessTokenPayload]:
    """Verify an access token with the configured secret."""
    return JWTManager().verify_access_token(token)
