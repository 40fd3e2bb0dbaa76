"""
Media storage for account avatars and cover images.
"""

from src.kernel.media.blob_store import (
    BlobStore,
    BlobUploadError,
    CloudinaryBlobStore,
    LocalBlobStore,
    MediaFile,
    build_blob_store,
)

__all__ = [
    "BlobStore",
    "BlobUploadError",
    "CloudinaryBlobStore",
    "LocalBlobStore",
    "MediaFile",
    "build_blob_store",
]
