"""
Identity Core - Authentication and user management.
"""

from assessment_platform.kernel.identity.password import PasswordHasher, verify_password, hash_password
from assessment_platform.kernel.identity.jwt import (
    JWTManager,
    TokenPair,
    AccessTokenPayload,
    verify_access_token,
)
from assessment_platform.kernel.identity.identity_service import IdentityService, generate_otp

__all__ = [
    "PasswordHasher",
    "verify_password",
    "hash_password",
    "JWTManager",
    "TokenPair",
    "AccessTokenPayload",
    "verify_access_token",
    "IdentityService",
    "generate_otp",
]
