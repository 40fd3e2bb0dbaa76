"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.auth import (
    UserCreate,
    UserLogin,
    UserResponse,
    UserProfileUpdate,
    TokenData,
    LoginData,
    RefreshTokenRequest,
    ChangePasswordRequest,
)
from src.schemas.common import (
    ApiResponse,
    ApiErrorResponse,
    CamelModel,
    ErrorDetail,
    HealthResponse,
    format_validation_errors,
)

__all__ = [
    # Auth
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "UserProfileUpdate",
    "TokenData",
    "LoginData",
    "RefreshTokenRequest",
    "ChangePasswordRequest",
    # Common
    "ApiResponse",
    "ApiErrorResponse",
    "CamelModel",
    "ErrorDetail",
    "HealthResponse",
    "format_validation_errors",
]
