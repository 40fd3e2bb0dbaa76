"""
Pytest fixtures for VidTube Accounts tests.

Every test gets its own SQLite file under ``tmp_path`` and an in-memory
blob store, so nothing touches the network or a shared database.
"""

import uuid
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings
from src.container import AppServices
from src.database import Database
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.jwt import JWTManager
from src.kernel.identity.password import PasswordHasher
from src.kernel.media.blob_store import BlobUploadError, MediaFile
from src.kernel.models.user import User
from src.main import create_app

TEST_PASSWORD = "TestPassword123"

# Smallest valid PNG header; the blob store never decodes images
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class InMemoryBlobStore:
    """Blob store double that keeps uploads in a dict."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.fail = False

    async def upload(self, content: bytes, filename: str, content_type: str) -> str:
        if self.fail:
            raise BlobUploadError("blob store unavailable")
        url = f"https://blobs.test/{uuid.uuid4().hex}/{filename}"
        self.blobs[url] = content
        return url

    async def aclose(self) -> None:
        return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        access_token_secret="test-access-secret-for-testing-only",
        refresh_token_secret="test-refresh-secret-for-testing-only",
        bcrypt_rounds=4,
        rate_limit_enabled=False,
        media_root=str(tmp_path / "media"),
    )


@pytest.fixture
def jwt_manager(settings: Settings) -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager.from_settings(settings)


@pytest.fixture
def password_hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def avatar() -> MediaFile:
    return MediaFile(content=PNG_BYTES, filename="avatar.png", content_type="image/png")


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create the schema in a fresh database."""
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with database.session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_identity_service(
    jwt_manager: JWTManager,
    password_hasher: PasswordHasher,
    blob_store: InMemoryBlobStore,
) -> Callable[..., IdentityService]:
    """Factory for services bound to a given session."""

    def factory(session: AsyncSession, **kwargs) -> IdentityService:
        return IdentityService(
            session,
            jwt_manager=jwt_manager,
            password_hasher=password_hasher,
            blob_store=blob_store,
            **kwargs,
        )

    return factory


@pytest.fixture
def identity_service(db_session: AsyncSession, make_identity_service) -> IdentityService:
    return make_identity_service(db_session)


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession, password_hasher: PasswordHasher) -> User:
    """Create a test user."""
    user = User(
        id=uuid.uuid4(),
        username="testuser",
        email="testuser@example.com",
        password_hash=password_hasher.hash(TEST_PASSWORD),
        full_name="Test User",
        avatar_url="https://blobs.test/avatar.png",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user: User, jwt_manager: JWTManager) -> dict:
    """Create authentication headers for a test user."""
    token, _, _ = jwt_manager.create_access_token(test_user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def services(
    settings: Settings,
    database: Database,
    jwt_manager: JWTManager,
    password_hasher: PasswordHasher,
    blob_store: InMemoryBlobStore,
) -> AppServices:
    return AppServices(
        settings=settings,
        database=database,
        jwt_manager=jwt_manager,
        password_hasher=password_hasher,
        blob_store=blob_store,
    )


@pytest_asyncio.fixture
async def client(settings: Settings, services: AppServices) -> AsyncGenerator[AsyncClient, None]:
    """
    Async client against an in-process app.

    The https base URL lets secure cookies round-trip through the jar.
    """
    app = create_app(settings, services)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="https://test",
    ) as ac:
        yield ac
