"""
Account endpoints: registration, login, session rotation and profile.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, File, Form, Request, Response, UploadFile, status
from pydantic import ValidationError as PydanticValidationError

from src.api.cookies import REFRESH_TOKEN_COOKIE, clear_auth_cookies, set_auth_cookies
from src.api.deps import AppSettings, CurrentAuth, Identity
from src.kernel.errors import AuthenticationError, ValidationError
from src.kernel.media.blob_store import MediaFile
from src.schemas.auth import (
    ChangePasswordRequest,
    LoginData,
    RefreshTokenRequest,
    TokenData,
    UserCreate,
    UserLogin,
    UserProfileUpdate,
    UserResponse,
)
from src.schemas.common import ApiResponse, format_validation_errors

router = APIRouter()


async def read_upload(upload: Optional[UploadFile], max_bytes: int) -> Optional[MediaFile]:
    """Read an uploaded file, stopping one byte past the limit."""
    if upload is None:
        return None
    try:
        content = await upload.read(max_bytes + 1)
    finally:
        await upload.close()
    return MediaFile(
        content=content,
        filename=upload.filename or "",
        content_type=upload.content_type or "",
    )


@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    identity_service: Identity,
    settings: AppSettings,
    username: Annotated[Optional[str], Form()] = None,
    email: Annotated[Optional[str], Form()] = None,
    password: Annotated[Optional[str], Form()] = None,
    full_name: Annotated[Optional[str], Form(alias="fullName")] = None,
    avatar: Annotated[Optional[UploadFile], File(alias="Avatar")] = None,
    cover_image: Annotated[Optional[UploadFile], File(alias="CoverImg")] = None,
):
    """
    Register a new user account.

    Multipart form with username, email, password, optional fullName, an
    ``Avatar`` image and an optional ``CoverImg`` image.
    """
    if any(not (value or "").strip() for value in (username, email, password)):
        raise ValidationError("All fields are required")

    try:
        data = UserCreate(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
        )
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid registration details",
            errors=format_validation_errors(e.errors()),
        ) from e

    user = await identity_service.register_user(
        data,
        avatar=await read_upload(avatar, settings.max_upload_bytes),
        cover_image=await read_upload(cover_image, settings.max_upload_bytes),
    )
    await identity_service.commit()

    return ApiResponse[UserResponse].ok(
        user,
        message="User registered successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/login", response_model=ApiResponse[LoginData])
async def login(
    data: UserLogin,
    response: Response,
    identity_service: Identity,
    settings: AppSettings,
):
    """
    Authenticate with username and/or email plus password.

    Tokens are returned in the body and set as http-only cookies.
    """
    user, token_pair = await identity_service.authenticate(
        password=data.password,
        username=data.username,
        email=data.email,
    )
    sanitized = await identity_service.get_sanitized_user(user.id)
    await identity_service.commit()

    set_auth_cookies(response, token_pair, settings)
    return ApiResponse[LoginData].ok(
        LoginData(
            user=sanitized,
            access_token=token_pair.access_token,
            refresh_token=token_pair.refresh_token,
        ),
        message="User logged in successfully",
    )


@router.post("/logout", response_model=ApiResponse[dict])
async def logout(
    auth: CurrentAuth,
    response: Response,
    identity_service: Identity,
    settings: AppSettings,
):
    """Revoke the stored refresh token and clear both cookies."""
    await identity_service.logout(auth.user_id)
    await identity_service.commit()
    clear_auth_cookies(response, settings)
    return ApiResponse[dict].ok({}, message="User logged out successfully")


@router.post("/refreshToken", response_model=ApiResponse[TokenData])
async def refresh_access_token(
    request: Request,
    response: Response,
    identity_service: Identity,
    settings: AppSettings,
    data: Optional[RefreshTokenRequest] = None,
):
    """
    Trade a refresh token (cookie or JSON body) for a new token pair.

    The presented refresh token stops working once this succeeds.
    """
    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (data.refresh_token if data else None)
    if not incoming:
        raise AuthenticationError("Refresh token is required")

    _, token_pair = await identity_service.refresh_tokens(incoming)
    await identity_service.commit()

    set_auth_cookies(response, token_pair, settings)
    return ApiResponse[TokenData].ok(
        TokenData(
            access_token=token_pair.access_token,
            refresh_token=token_pair.refresh_token,
        ),
        message="Access token refreshed",
    )


@router.patch("/changePassword", response_model=ApiResponse[dict])
async def change_password(
    data: ChangePasswordRequest,
    auth: CurrentAuth,
    identity_service: Identity,
):
    """Change the current user's password."""
    await identity_service.change_password(
        user_id=auth.user_id,
        current_password=data.old_password,
        new_password=data.new_password,
    )
    await identity_service.commit()
    return ApiResponse[dict].ok({}, message="Password changed successfully")


@router.get("/getUser", response_model=ApiResponse[UserResponse])
async def get_current_user(auth: CurrentAuth):
    """Get current user's profile."""
    return ApiResponse[UserResponse].ok(auth.user, message="Current user fetched")


@router.patch("/updateProfile", response_model=ApiResponse[UserResponse])
async def update_profile(
    data: UserProfileUpdate,
    auth: CurrentAuth,
    identity_service: Identity,
):
    """Update current user's full name and/or email."""
    user = await identity_service.update_profile(
        auth.user_id,
        full_name=data.full_name,
        email=data.email,
    )
    await identity_service.commit()
    return ApiResponse[UserResponse].ok(user, message="Profile updated")


@router.patch("/updateAvatar", response_model=ApiResponse[UserResponse])
async def update_avatar(
    auth: CurrentAuth,
    identity_service: Identity,
    settings: AppSettings,
    avatar: Annotated[Optional[UploadFile], File(alias="Avatar")] = None,
):
    """Replace the current user's avatar."""
    user = await identity_service.update_avatar(
        auth.user_id,
        await read_upload(avatar, settings.max_upload_bytes),
    )
    await identity_service.commit()
    return ApiResponse[UserResponse].ok(user, message="Avatar updated")


@router.patch("/updateCoverImg", response_model=ApiResponse[UserResponse])
async def update_cover_image(
    auth: CurrentAuth,
    identity_service: Identity,
    settings: AppSettings,
    cover_image: Annotated[Optional[UploadFile], File(alias="CoverImg")] = None,
):
    """Replace the current user's cover image."""
    user = await identity_service.update_cover_image(
        auth.user_id,
        await read_upload(cover_image, settings.max_upload_bytes),
    )
    await identity_service.commit()
    return ApiResponse[UserResponse].ok(user, message="Cover image updated")
