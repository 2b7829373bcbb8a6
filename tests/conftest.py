import os

# Set test environment
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "change-me-in-production"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DISCOURSE_BASE_URL"] = "https://forum.example.com"
os.environ["DISCOURSE_SSO_SECRET"] = "test-sso-secret-value"
os.environ["DISCOURSE_CONNECT_NAME"] = "Test Community"
os.environ["SSO_UNAUTHENTICATED_ACTION"] = "redirect"
os.environ["SSO_REPLAY_PROTECTION"] = "false"

from collections.abc import AsyncGenerator, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sso_bridge.config import SSOConfig
from sso_bridge.database import Base, get_db
from sso_bridge.main import app
from sso_bridge.models import User
from sso_bridge.utils.auth import create_access_token
from sso_bridge.utils.payload import encode_payload
from sso_bridge.utils.signing import sign_payload

FORUM_BASE_URL = "https://forum.example.com"
RETURN_SSO_URL = f"{FORUM_BASE_URL}/session/sso_login"


@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path):
    """Create a throwaway SQLite database for each test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bridge.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database session override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, **overrides) -> User:
    unique_id = uuid4()
    fields = {
        "id": unique_id,
        "email": f"test-{unique_id}@example.com",
        "email_verified": True,
        "username": f"user-{unique_id.hex[:8]}",
        "display_name": "Test User",
        "role": "user",
        "is_active": True,
    }
    fields.update(overrides)
    user = User(**fields)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a verified regular user."""
    return await _create_user(db_session)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, role="admin", display_name="Admin User")


@pytest_asyncio.fixture
async def unverified_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, email_verified=False)


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Create authorization headers for authenticated requests."""
    token = create_access_token(str(test_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sso_config() -> SSOConfig:
    return app.state.sso_service.config


@pytest.fixture
def signed_request(sso_config: SSOConfig) -> Callable[..., dict[str, str]]:
    """Build ``sso``/``sig`` query parameters the way the forum does."""

    def _build(
        nonce: str = "nonce-123",
        return_sso_url: str = RETURN_SSO_URL,
        secret: bytes | None = None,
    ) -> dict[str, str]:
        payload = encode_payload([("nonce", nonce), ("return_sso_url", return_sso_url)])
        return {"sso": payload, "sig": sign_payload(payload, secret or sso_config.shared_secret)}

    return _build
