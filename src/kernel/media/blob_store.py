"""
Blob store for uploaded account media (avatars and cover images).

The store is an external collaborator: callers hand it bytes and get back a
permanent URL. Two backends are provided:

- ``LocalBlobStore`` writes into a directory served as static files.
- ``CloudinaryBlobStore`` talks to the Cloudinary upload REST API.
"""

import hashlib
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx
from starlette.concurrency import run_in_threadpool

from src.config import Settings
from src.logging_config import get_logger

logger = get_logger(__name__)

# Extensions kept on stored files; anything else is stored without one
_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif"}


class BlobUploadError(Exception):
    """Raised when a blob could not be stored."""


@dataclass(frozen=True)
class MediaFile:
    """An uploaded file read fully into memory."""

    content: bytes
    filename: str
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


class BlobStore(Protocol):
    """Anything that can persist bytes and return a permanent URL."""

    async def upload(self, content: bytes, filename: str, content_type: str) -> str:
        ...

    async def aclose(self) -> None:
        ...


def _storage_name(filename: str) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix not in _IMAGE_EXTENSIONS:
        suffix = ""
    return f"{uuid.uuid4().hex}{suffix}"


class LocalBlobStore:
    """Store blobs on the local filesystem under ``media_root``."""

    def __init__(self, media_root: str, base_url: str = "/media"):
        self.media_root = Path(media_root)
        self.base_url = base_url.rstrip("/")

    def _write(self, name: str, content: bytes) -> None:
        self.media_root.mkdir(parents=True, exist_ok=True)
        (self.media_root / name).write_bytes(content)

    async def upload(self, content: bytes, filename: str, content_type: str) -> str:
        name = _storage_name(filename)
        try:
            await run_in_threadpool(self._write, name, content)
        except OSError as e:
            logger.error("Local blob write failed", extra={"blob": name, "error": str(e)})
            raise BlobUploadError(f"Could not store {filename!r}") from e
        return f"{self.base_url}/{name}"

    async def aclose(self) -> None:
        return None


class CloudinaryBlobStore:
    """
    Upload blobs through Cloudinary's signed upload endpoint.

    See https://cloudinary.com/documentation/upload_images#authenticated_requests
    for the signature scheme: sorted ``key=value`` pairs joined with ``&``,
    the API secret appended, SHA-1 hex digest.
    """

    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def upload_url(self) -> str:
        return f"{self.API_BASE}/{self.cloud_name}/auto/upload"

    def sign(self, params: dict) -> str:
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()

    async def upload(self, content: bytes, filename: str, content_type: str) -> str:
        params = {"timestamp": str(int(time.time()))}
        if self.folder:
            params["folder"] = self.folder

        data = {**params, "api_key": self.api_key, "signature": self.sign(params)}
        files = {"file": (filename or "upload", content, content_type)}

        try:
            response = await self._client.post(self.upload_url, data=data, files=files)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Cloudinary upload failed", extra={"upload_filename": filename, "error": str(e)})
            raise BlobUploadError(f"Could not upload {filename!r}") from e

        url = body.get("secure_url") or body.get("url")
        if not url:
            raise BlobUploadError("Cloudinary response did not include a URL")
        return url

    async def aclose(self) -> None:
        await self._client.aclose()


def build_blob_store(settings: Settings) -> BlobStore:
    """Create the blob store selected by ``BLOB_STORE_BACKEND``."""
    if settings.blob_store_backend == "cloudinary":
        return CloudinaryBlobStore(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
        )
    return LocalBlobStore(settings.media_root, settings.media_base_url)
