"""
Kernel Data Models

Core SQLAlchemy models for account identity.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid
from src.kernel.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "User",
]
