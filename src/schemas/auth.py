"""
Authentication and account schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from src.schemas.common import CamelModel


def validate_password_strength(v: str) -> str:
    """Shared password policy for registration and password changes."""
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class UserCreate(CamelModel):
    """User registration request (text fields of the multipart form)."""

    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., max_length=128)
    full_name: Optional[str] = Field(None, max_length=255)

    @field_validator("username", "email", mode="before")
    @classmethod
    def normalize_identifier(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("full_name", mode="before")
    @classmethod
    def blank_name_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UserLogin(CamelModel):
    """User login request. Either identifier may be used."""

    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(CamelModel):
    """Sanitized user profile. Never carries password or refresh token."""

    id: uuid.UUID
    username: str
    email: str
    full_name: Optional[str] = None
    avatar_url: str
    cover_image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserProfileUpdate(CamelModel):
    """User profile update request."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None

    @field_validator("full_name", "email", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def at_least_one_field(self) -> "UserProfileUpdate":
        if self.full_name is None and self.email is None:
            raise ValueError("Provide fullName or email to update")
        return self


class TokenData(CamelModel):
    """Freshly issued token pair."""

    access_token: str
    refresh_token: str


class LoginData(TokenData):
    """Login result: the user plus their new token pair."""

    user: UserResponse


class RefreshTokenRequest(CamelModel):
    """Token refresh request body (the cookie takes precedence)."""

    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    """Password change request."""

    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)
