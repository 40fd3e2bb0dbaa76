"""
JWT token management for authentication.

Access and refresh tokens share a structure (signed, self-contained,
time-bounded claims) but are signed with different secrets, so a token of
one kind can never verify as the other.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ConfigDict

from src.config import Settings
from src.kernel.errors import (
    InvalidTokenError,
    TokenConfigurationError,
    TokenExpiredError,
)
from src.kernel.models.user import User


class TokenKind(str, Enum):
    """Which secret and payload shape a token uses."""
    ACCESS = "access"
    REFRESH = "refresh"


class AccessTokenPayload(BaseModel):
    """JWT access token payload."""

    model_config = ConfigDict(frozen=True)

    sub: str  # User ID
    username: str
    email: str
    exp: datetime
    iat: datetime
    jti: str
    type: TokenKind = TokenKind.ACCESS


class RefreshTokenPayload(BaseModel):
    """JWT refresh token payload."""

    model_config = ConfigDict(frozen=True)

    sub: str  # User ID
    exp: datetime
    iat: datetime
    jti: str
    type: TokenKind = TokenKind.REFRESH


TokenPayload = Union[AccessTokenPayload, RefreshTokenPayload]


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_in: int  # Seconds until access token expires
    refresh_expires_in: int  # Seconds until refresh token expires


class JWTManager:
    """
    JWT token creation and verification.

    Handles access tokens (short-lived, never stored) and refresh tokens
    (long-lived, digest stored on the user record for revocation).
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        refresh_token_expire_days: int = 10,
    ):
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.refresh_token_expire_days = refresh_token_expire_days
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "JWTManager":
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            algorithm=settings.algorithm,
            access_token_expire_minutes=settings.access_token_expire_minutes,
            refresh_token_expire_days=settings.refresh_token_expire_days,
        )

    @property
    def access_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_lifetime(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    def _secret_for(self, kind: TokenKind) -> str:
        secret = self._secrets.get(kind)
        if not secret:
            raise TokenConfigurationError(f"No signing secret configured for {kind.value} tokens")
        return secret

    def _sign(self, claims: dict, kind: TokenKind) -> str:
        try:
            return jwt.encode(claims, self._secret_for(kind), algorithm=self.algorithm)
        except JWTError as e:
            raise TokenConfigurationError(f"Unable to sign {kind.value} token: {e}") from e

    def create_access_token(
        self,
        user: User,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime, str]:
        """
        Create a new access token.

        Args:
            user: The authenticated user
            expires_delta: Optional custom lifetime

        Returns:
            Tuple of (token, expiration_datetime, token_id)
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else self.access_lifetime)
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "exp": expire,
            "iat": now,
            "jti": jti,
            "type": TokenKind.ACCESS.value,
        }

        return self._sign(payload, TokenKind.ACCESS), expire, jti

    def create_refresh_token(
        self,
        user: User,
        expires_delta: Optional[timedelta] = None,
    ) -> tuple[str, datetime, str]:
        """
        Create a new refresh token.

        Args:
            user: The authenticated user
            expires_delta: Optional custom lifetime

        Returns:
            Tuple of (token, expiration_datetime, token_id)
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else self.refresh_lifetime)
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(user.id),
            "exp": expire,
            "iat": now,
            "jti": jti,
            "type": TokenKind.REFRESH.value,
        }

        return self._sign(payload, TokenKind.REFRESH), expire, jti

    def create_token_pair(self, user: User) -> TokenPair:
        """Create both access and refresh tokens for a user."""
        access_token, access_exp, _ = self.create_access_token(user)
        refresh_token, refresh_exp, _ = self.create_refresh_token(user)

        now = datetime.now(timezone.utc)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_in=int((access_exp - now).total_seconds()),
            refresh_expires_in=int((refresh_exp - now).total_seconds()),
        )

    def verify(self, token: str, kind: TokenKind) -> TokenPayload:
        """
        Verify signature and expiry of a token and decode its payload.

        Args:
            token: Encoded JWT
            kind: Which secret and payload shape to verify against

        Returns:
            AccessTokenPayload or RefreshTokenPayload

        Raises:
            TokenExpiredError: Signature is valid but the token has expired
            InvalidTokenError: Malformed, bad signature, or wrong token kind
        """
        if not token:
            raise InvalidTokenError("Token is empty")

        try:
            claims = jwt.decode(
                token,
                self._secret_for(kind),
                algorithms=[self.algorithm],
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise InvalidTokenError() from e

        if claims.get("type") != kind.value:
            raise InvalidTokenError(f"Expected a {kind.value} token")

        model = AccessTokenPayload if kind is TokenKind.ACCESS else RefreshTokenPayload
        try:
            return model(
                **{
                    **claims,
                    "exp": datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
                    "iat": datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
                }
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError("Token is missing required claims") from e

    def verify_access_token(self, token: str) -> AccessTokenPayload:
        """Verify and decode an access token."""
        return self.verify(token, TokenKind.ACCESS)  # type: ignore[return-value]

    def verify_refresh_token(self, token: str) -> RefreshTokenPayload:
        """Verify and decode a refresh token."""
        return self.verify(token, TokenKind.REFRESH)  # type: ignore[return-value]

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Create a hash of a token for storage.

        Used for storing refresh tokens in the database.

        Args:
            token: The token to hash

        Returns:
            SHA-256 hash of the token
        """
        return hashlib.sha256(token.encode()).hexdigest()
