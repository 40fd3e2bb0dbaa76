"""
FastAPI dependencies for services, database sessions and authentication.
"""

import uuid
from dataclasses import dataclass
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.cookies import ACCESS_TOKEN_COOKIE
from src.config import Settings
from src.container import AppServices
from src.kernel.errors import AuthenticationError
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.jwt import AccessTokenPayload
from src.logging_config import get_logger
from src.schemas.auth import UserResponse

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AppServices:
    """The service container created at startup."""
    return request.app.state.services


Services = Annotated[AppServices, Depends(get_services)]


def get_app_settings(services: Services) -> Settings:
    return services.settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


async def get_db(services: Services) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields one database session per request.

    Routes that write commit through the service before responding; this
    teardown commit may run after the response has gone out.
    """
    async with services.database.session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_identity_service(db: DbSession, services: Services) -> IdentityService:
    return IdentityService(
        db,
        jwt_manager=services.jwt_manager,
        password_hasher=services.password_hasher,
        blob_store=services.blob_store,
        revoke_on_reuse=services.settings.refresh_reuse_revokes_session,
        max_upload_bytes=services.settings.max_upload_bytes,
    )


Identity = Annotated[IdentityService, Depends(get_identity_service)]


@dataclass(frozen=True)
class AuthContext:
    """What the session gate hands to a protected handler."""

    user: UserResponse
    token: AccessTokenPayload
    request_id: Optional[str] = None

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id


def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Access token from the cookie, else from the bearer header."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


async def get_auth_context(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    identity_service: Identity,
    services: Services,
) -> AuthContext:
    """
    Session gate for protected operations.

    Read-only. Every failure is a 401; unexpected lookup failures are logged
    with their stack trace and also reported as 401.
    """
    token = extract_access_token(request, credentials)
    if not token:
        raise AuthenticationError("Unauthorized request: no token")

    try:
        payload = services.jwt_manager.verify_access_token(token)
    except AuthenticationError as e:
        logger.info("Access token rejected", extra={"reason": e.error_code})
        raise AuthenticationError("Invalid or expired access token") from e

    try:
        user_id = uuid.UUID(payload.sub)
    except ValueError as e:
        raise AuthenticationError("Invalid or expired access token") from e

    try:
        user = await identity_service.get_sanitized_user(user_id)
    except Exception as e:
        logger.exception("Identity lookup failed during authentication")
        raise AuthenticationError("Unable to verify identity") from e

    if user is None:
        raise AuthenticationError("Identity not found")

    return AuthContext(
        user=user,
        token=payload,
        request_id=get_request_id(request),
    )


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> str:
    """Extract client IP from request (X-Forwarded-For or direct)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
