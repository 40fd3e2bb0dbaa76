"""
Domain error taxonomy.

Every expected rejection in the account lifecycle is raised as one of these.
A single boundary translator (see ``src.main.register_exception_handlers``)
turns them into the standard error envelope; anything else becomes a
generic 500.
"""

from typing import Any, List, Optional


class ServiceError(Exception):
    """Base class for service-layer errors mapped to HTTP responses."""

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(ServiceError):
    """Missing, blank or malformed input (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Missing, invalid or expired credentials (401)."""
    status_code = 401
    error_code = "unauthorized"


class TokenExpiredError(AuthenticationError):
    """Token signature is valid but the token is past its expiry."""
    error_code = "token_expired"

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Token is malformed, has a bad signature, or is the wrong kind."""
    error_code = "invalid_token"

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class NotFoundError(ServiceError):
    """Unknown login identifier or resource (404)."""
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Duplicate username or email (409)."""
    status_code = 409
    error_code = "conflict"


class DependencyError(ServiceError):
    """Blob store or persistence failure (500)."""
    status_code = 500
    error_code = "dependency_error"


class TokenConfigurationError(RuntimeError):
    """Signing key is missing or unusable. Never shown to clients."""


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "TokenExpiredError",
    "InvalidTokenError",
    "NotFoundError",
    "ConflictError",
    "DependencyError",
    "TokenConfigurationError",
]
