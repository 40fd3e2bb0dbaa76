"""
Identity Core - Authentication and session lifecycle.
"""

from src.kernel.identity.password import PasswordHasher
from src.kernel.identity.jwt import (
    JWTManager,
    TokenKind,
    TokenPair,
    AccessTokenPayload,
    RefreshTokenPayload,
)
from src.kernel.identity.identity_service import IdentityService

__all__ = [
    "PasswordHasher",
    "JWTManager",
    "TokenKind",
    "TokenPair",
    "AccessTokenPayload",
    "RefreshTokenPayload",
    "IdentityService",
]
