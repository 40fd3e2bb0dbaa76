"""
Rate limiting per client IP and per user.

Auth endpoints (register, login, refresh) are limited per IP; everything
else per authenticated user, falling back to IP.
"""

import time
from typing import Callable, Optional, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.cookies import ACCESS_TOKEN_COOKIE
from src.api.deps import get_client_ip
from src.config import Settings
from src.kernel.errors import AuthenticationError
from src.logging_config import get_logger
from src.schemas.common import ApiErrorResponse

logger = get_logger(__name__)

# Unauthenticated endpoints that mint or check credentials
AUTH_PATHS = ("/users/register", "/users/login", "/users/refreshToken")


def _get_user_id_from_token(request: Request) -> Optional[str]:
    """User id from a verified access token (cookie first, then bearer)."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        auth = request.headers.get("authorization", "")
        if auth.lower().startswith("bearer "):
            token = auth[7:].strip()
    if not token:
        return None

    services = getattr(request.app.state, "services", None)
    if services is None:
        return None
    try:
        return services.jwt_manager.verify_access_token(token).sub
    except AuthenticationError:
        return None


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self):
        self._data: dict[str, Tuple[int, float]] = {}

    def check_and_incr(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> bool:
        """Returns True if under limit (and increments). False if over limit (no increment)."""
        key = f"{scope}:{identifier}"
        now = time.monotonic()
        count, start = self._data.get(key, (0, now))
        if now - start >= window_seconds:
            count, start = 0, now
        if count >= limit:
            return False
        self._data[key] = (count + 1, start)
        return True

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Remove entries older than max_age_seconds to avoid unbounded growth."""
        now = time.monotonic()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for k in stale:
            self._data.pop(k, None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limit by scope:
    - auth: POST register/login/refresh -> per IP
    - api: other API routes -> per user (or IP)

    Each middleware instance owns its store (single process). Multi-worker
    deployments need a shared backend such as Redis.
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        super().__init__(app)
        self.settings = settings
        self.store = InMemoryRateLimitStore()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = self.settings
        path = request.url.path or ""
        if not settings.rate_limit_enabled or not path.startswith(settings.api_v1_prefix):
            return await call_next(request)

        self.store.cleanup_old(max_age_seconds=7200)

        api_path = path[len(settings.api_v1_prefix):]
        if request.method == "POST" and api_path in AUTH_PATHS:
            scope = "auth"
            limit = settings.rate_limit_auth_per_minute
            identifier = get_client_ip(request)
        else:
            scope = "api"
            limit = settings.rate_limit_api_per_minute
            identifier = _get_user_id_from_token(request) or get_client_ip(request)

        if not self.store.check_and_incr(scope, identifier, limit, window_seconds=60):
            logger.warning("Rate limit exceeded", extra={"scope": scope, "path": path})
            body = ApiErrorResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                message="Too many requests. Please try again later.",
                request_id=getattr(request.state, "request_id", None),
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=body.model_dump(by_alias=True),
            )
        return await call_next(request)
