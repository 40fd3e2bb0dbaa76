"""
Identity service for account lifecycle operations.
"""

import hmac
import uuid
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import (
    AuthenticationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from src.kernel.identity.jwt import JWTManager, TokenPair
from src.kernel.identity.password import PasswordHasher
from src.kernel.media.blob_store import BlobStore, BlobUploadError, MediaFile
from src.kernel.models.user import User
from src.logging_config import get_logger
from src.schemas.auth import UserCreate, UserResponse

logger = get_logger(__name__)

# Column projection for the sanitized identity (no password, no refresh token)
_PUBLIC_COLUMNS = (
    User.id,
    User.username,
    User.email,
    User.full_name,
    User.avatar_url,
    User.cover_image_url,
    User.created_at,
    User.updated_at,
)

# Refresh failures share one message so callers cannot tell which check failed
REFRESH_REJECTED = "Invalid or expired refresh token"
LOGIN_REJECTED = "Invalid username, email or password"
DUPLICATE_ACCOUNT = "An account with this username or email already exists"

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class IdentityService:
    """
    Service for user identity operations.

    Handles registration, authentication, refresh-token rotation, logout,
    password changes and profile/media updates. One instance per unit of
    work; the caller owns the session and commits it.
    """

    def __init__(
        self,
        session: AsyncSession,
        jwt_manager: JWTManager,
        password_hasher: PasswordHasher,
        blob_store: Optional[BlobStore] = None,
        revoke_on_reuse: bool = True,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.session = session
        self.jwt_manager = jwt_manager
        self.password_hasher = password_hasher
        self.blob_store = blob_store
        self.revoke_on_reuse = revoke_on_reuse
        self.max_upload_bytes = max_upload_bytes

    async def commit(self) -> None:
        """Make this unit of work durable. Call before the response is sent."""
        await self.session.commit()

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    async def register_user(
        self,
        data: UserCreate,
        avatar: Optional[MediaFile],
        cover_image: Optional[MediaFile] = None,
    ) -> UserResponse:
        """
        Register a new user.

        Args:
            data: Validated registration fields (username/email normalized)
            avatar: Required avatar image
            cover_image: Optional cover image

        Returns:
            The sanitized identity of the created user

        Raises:
            ConflictError: Username or email already taken
            ValidationError: Avatar missing or not an acceptable image
            DependencyError: Media upload failed
        """
        if await self._account_exists(data.username, data.email):
            raise ConflictError(DUPLICATE_ACCOUNT)

        if avatar is None or avatar.size == 0:
            raise ValidationError("Avatar file is required")

        avatar_url = await self._store_media(avatar, "avatar")
        cover_image_url = None
        if cover_image is not None and cover_image.size > 0:
            cover_image_url = await self._store_media(cover_image, "cover image")

        user = User(
            username=data.username,
            email=data.email,
            full_name=data.full_name,
            password_hash=await self.password_hasher.hash_async(data.password),
            avatar_url=avatar_url,
            cover_image_url=cover_image_url,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same name/email
            raise ConflictError(DUPLICATE_ACCOUNT) from e

        created = await self.get_sanitized_user(user.id)
        if created is None:
            raise DependencyError("User registration could not be confirmed")

        logger.info("User registered", extra={"user_id": str(user.id)})
        return created

    async def authenticate(
        self,
        password: Optional[str],
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> tuple[User, TokenPair]:
        """
        Authenticate a user by username and/or email and issue a session.

        Unknown identifiers and wrong passwords are both reported as
        NotFoundError with the same message.

        Returns:
            Tuple of (User, TokenPair)
        """
        username = (username or "").strip().lower()
        email = (email or "").strip().lower()
        if not (username or email) or not password:
            raise ValidationError("Username or email and password are required")

        user = await self.get_user_by_login(username=username, email=email)
        if user is None:
            raise NotFoundError(LOGIN_REJECTED)

        if not await self.password_hasher.verify_async(password, user.password_hash):
            logger.info("Login rejected: wrong password", extra={"user_id": str(user.id)})
            raise NotFoundError(LOGIN_REJECTED)

        token_pair = self.jwt_manager.create_token_pair(user)
        await self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(refresh_token_hash=JWTManager.hash_token(token_pair.refresh_token))
            .execution_options(synchronize_session=False)
        )

        if self.password_hasher.needs_rehash(user.password_hash):
            await self._set_password(user.id, password)

        logger.info("User logged in", extra={"user_id": str(user.id)})
        return user, token_pair

    # ------------------------------------------------------------------
    # Session rotation and revocation
    # ------------------------------------------------------------------

    async def refresh_tokens(self, refresh_token: Optional[str]) -> tuple[User, TokenPair]:
        """
        Rotate a session: trade a refresh token for a brand-new pair.

        The presented token must be the one currently stored for the user.
        A mismatch means the token was superseded or replayed; the stored
        session is revoked (when ``revoke_on_reuse``) and the call fails.
        The overwrite is a conditional UPDATE so two concurrent rotations
        with the same token cannot both succeed.

        Raises:
            AuthenticationError: Always with the same generic message
        """
        if not refresh_token:
            raise AuthenticationError("Refresh token is required")

        try:
            payload = self.jwt_manager.verify_refresh_token(refresh_token)
        except AuthenticationError as e:
            logger.info("Refresh rejected", extra={"reason": e.error_code})
            raise AuthenticationError(REFRESH_REJECTED) from e

        user_id = _parse_user_id(payload.sub)
        user = await self.get_user_by_id(user_id) if user_id else None
        if user is None:
            logger.info("Refresh rejected", extra={"reason": "unknown_subject"})
            raise AuthenticationError(REFRESH_REJECTED)

        presented_hash = JWTManager.hash_token(refresh_token)
        if not user.refresh_token_hash or not hmac.compare_digest(
            user.refresh_token_hash, presented_hash
        ):
            await self._handle_reuse(user.id, had_session=bool(user.refresh_token_hash))
            raise AuthenticationError(REFRESH_REJECTED)

        token_pair = self.jwt_manager.create_token_pair(user)
        result = await self.session.execute(
            update(User)
            .where(User.id == user.id, User.refresh_token_hash == presented_hash)
            .values(refresh_token_hash=JWTManager.hash_token(token_pair.refresh_token))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._handle_reuse(user.id, had_session=True)
            raise AuthenticationError(REFRESH_REJECTED)

        logger.info("Session rotated", extra={"user_id": str(user.id)})
        return user, token_pair

    async def logout(self, user_id: uuid.UUID) -> None:
        """Log out a user by clearing their stored refresh token."""
        await self.revoke_session(user_id)
        logger.info("User logged out", extra={"user_id": str(user_id)})

    async def revoke_session(self, user_id: uuid.UUID) -> None:
        """Unset the stored refresh token so no refresh token can rotate."""
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(refresh_token_hash=None)
            .execution_options(synchronize_session=False)
        )

    async def _handle_reuse(self, user_id: uuid.UUID, had_session: bool) -> None:
        logger.warning(
            "Refresh token reuse detected",
            extra={"user_id": str(user_id), "session_revoked": self.revoke_on_reuse and had_session},
        )
        if self.revoke_on_reuse and had_session:
            await self.revoke_session(user_id)
            # The rejection that follows rolls the request back; keep the revocation
            await self.session.commit()

    # ------------------------------------------------------------------
    # Credentials and profile
    # ------------------------------------------------------------------

    async def change_password(
        self,
        user_id: uuid.UUID,
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        """
        Change user's password after checking the current one.

        Raises:
            ValidationError: Missing fields or wrong current password
            AuthenticationError: The user no longer exists
        """
        if not current_password or not new_password:
            raise ValidationError("Old and new password are required")

        user = await self.get_user_by_id(user_id)
        if user is None:
            raise AuthenticationError("Identity not found")

        if not await self.password_hasher.verify_async(current_password, user.password_hash):
            raise ValidationError("Old password is incorrect")

        await self._set_password(user.id, new_password)
        logger.info("Password changed", extra={"user_id": str(user.id)})

    async def _set_password(self, user_id: uuid.UUID, password: str) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=await self.password_hasher.hash_async(password))
            .execution_options(synchronize_session=False)
        )

    async def update_profile(
        self,
        user_id: uuid.UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> UserResponse:
        """
        Update full name and/or email.

        Raises:
            ConflictError: Email already used by another account
        """
        changes: dict = {}
        if full_name is not None:
            changes["full_name"] = full_name.strip()
        if email is not None:
            new_email = email.strip().lower()
            existing = await self.session.scalar(
                select(User.id).where(User.email == new_email, User.id != user_id)
            )
            if existing is not None:
                raise ConflictError("Email already in use")
            changes["email"] = new_email

        if changes:
            await self._update_columns(user_id, **changes)
            logger.info("Profile updated", extra={"user_id": str(user_id), "fields": sorted(changes)})

        return await self._require_sanitized_user(user_id)

    async def update_avatar(self, user_id: uuid.UUID, avatar: Optional[MediaFile]) -> UserResponse:
        """Upload a new avatar and point the user at it."""
        if avatar is None or avatar.size == 0:
            raise ValidationError("Avatar file is required")
        url = await self._store_media(avatar, "avatar")
        await self._update_columns(user_id, avatar_url=url)
        return await self._require_sanitized_user(user_id)

    async def update_cover_image(
        self, user_id: uuid.UUID, cover_image: Optional[MediaFile]
    ) -> UserResponse:
        """Upload a new cover image and point the user at it."""
        if cover_image is None or cover_image.size == 0:
            raise ValidationError("Cover image file is required")
        url = await self._store_media(cover_image, "cover image")
        await self._update_columns(user_id, cover_image_url=url)
        return await self._require_sanitized_user(user_id)

    async def _update_columns(self, user_id: uuid.UUID, **values) -> None:
        try:
            await self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            raise ConflictError("Email already in use") from e

    async def _store_media(self, media: MediaFile, label: str) -> str:
        if not (media.content_type or "").startswith("image/"):
            raise ValidationError(f"The {label} must be an image")
        if media.size > self.max_upload_bytes:
            raise ValidationError(
                f"The {label} exceeds the {self.max_upload_bytes // 1024} KiB limit"
            )
        if self.blob_store is None:
            raise DependencyError("Media storage is not configured")
        try:
            return await self.blob_store.upload(media.content, media.filename, media.content_type)
        except BlobUploadError as e:
            raise DependencyError(f"Failed to upload {label}") from e

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get a full user record by ID (includes credential columns)."""
        result = await self.session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_by_login(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        """Get a user whose username or email matches."""
        conditions = []
        if username:
            conditions.append(User.username == username.strip().lower())
        if email:
            conditions.append(User.email == email.strip().lower())
        if not conditions:
            return None
        result = await self.session.execute(
            select(User)
            .where(or_(*conditions))
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_sanitized_user(self, user_id: uuid.UUID) -> Optional[UserResponse]:
        """Get the public projection of a user, never loading credentials."""
        result = await self.session.execute(select(*_PUBLIC_COLUMNS).where(User.id == user_id))
        row = result.one_or_none()
        if row is None:
            return None
        return UserResponse.model_validate(dict(row._mapping))

    async def _require_sanitized_user(self, user_id: uuid.UUID) -> UserResponse:
        user = await self.get_sanitized_user(user_id)
        if user is None:
            raise AuthenticationError("Identity not found")
        return user

    async def _account_exists(self, username: str, email: str) -> bool:
        existing = await self.session.scalar(
            select(User.id).where(or_(User.username == username, User.email == email)).limit(1)
        )
        return existing is not None


def _parse_user_id(subject: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(subject)
    except (TypeError, ValueError):
        return None
