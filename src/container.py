"""
Application service container.

Built once when the application starts, stored on ``app.state.services``
and handed to request handlers through dependencies. Torn down on shutdown.
"""

from dataclasses import dataclass

from src.config import Settings
from src.database import Database
from src.kernel.identity.jwt import JWTManager
from src.kernel.identity.password import PasswordHasher
from src.kernel.media.blob_store import BlobStore, build_blob_store


@dataclass
class AppServices:
    """Long-lived collaborators shared by all requests."""

    settings: Settings
    database: Database
    jwt_manager: JWTManager
    password_hasher: PasswordHasher
    blob_store: BlobStore

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppServices":
        return cls(
            settings=settings,
            database=Database(settings.database_url, echo=settings.debug),
            jwt_manager=JWTManager.from_settings(settings),
            password_hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            blob_store=build_blob_store(settings),
        )

    async def aclose(self) -> None:
        await self.blob_store.aclose()
        await self.database.dispose()
