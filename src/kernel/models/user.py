"""
User model for identity management.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):
    """
    Registered account.

    ``refresh_token_hash`` holds the SHA-256 digest of the one refresh token
    currently allowed to rotate the session, or NULL when logged out.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    username: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    refresh_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    avatar_url: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
    )
    cover_image_url: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.username}>"
