"""
Common schema types used across the API.

Every response, success or error, uses the same envelope:
``{statusCode, data, message, success}``; errors add ``errors``.
"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    """Standard success response."""

    status_code: int = 200
    data: Optional[T] = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def ok(
        cls,
        data: Optional[T] = None,
        message: str = "Success",
        status_code: int = 200,
    ) -> "ApiResponse[T]":
        return cls(
            status_code=status_code,
            data=data,
            message=message,
            success=status_code < 400,
        )


class ErrorDetail(CamelModel):
    """One entry of the ``errors`` list."""

    field: Optional[str] = None
    message: str
    type: Optional[str] = None


class ApiErrorResponse(CamelModel):
    """Standard error response."""

    status_code: int
    data: None = None
    message: str
    success: bool = False
    errors: List[Any] = Field(default_factory=list)
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"


def format_validation_errors(errors: List[dict]) -> List[dict]:
    """Flatten pydantic error dicts into ``{field, message, type}`` entries."""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append(
            ErrorDetail(
                field=".".join(loc) or None,
                message=error.get("msg", "Invalid value"),
                type=error.get("type"),
            ).model_dump()
        )
    return formatted
