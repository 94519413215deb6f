"""
Test fixtures: a fresh in-memory SQLite database per test and an HTTP
client bound to the app with that database injected.
"""
import os

# Must be set before the crm modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-0123")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from crm.base_microservice import Base
from crm.main import app
from crm.auth.jwt import TokenService
from crm.auth.models import User, Role
from crm.auth.passwords import PasswordHasher
from crm.auth.store import SqlUserStore, UserStore
from crm.auth.users import AccountService, get_db_session

TEST_DB_URL = "sqlite+aiosqlite://"

@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture()
async def db_session(db_engine):
    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        yield session

@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)

@pytest.fixture
def tokens():
    return TokenService(secret_key="unit-test-secret-key-0123456789abcdef")

@pytest.fixture
def store(db_session):
    return SqlUserStore(db_session)

@pytest.fixture
def accounts(store, hasher, tokens):
    return AccountService(store, hasher, tokens)

class UnavailableUserStore(UserStore):
    """Store whose every call fails the way a lost database connection would."""

    async def exists_by_username(self, username):
        raise RuntimeError("database unavailable")

    async def exists_by_email(self, email):
        raise RuntimeError("database unavailable")

    async def find_by_username(self, username):
        raise RuntimeError("database unavailable")

    async def find_by_id(self, user_id):
        raise RuntimeError("database unavailable")

    async def find_all(self):
        raise RuntimeError("database unavailable")

    async def save(self, user):
        raise RuntimeError("database unavailable")

@pytest.fixture
def unavailable_store():
    return UnavailableUserStore()

@pytest_asyncio.fixture()
async def create_user(db_session):
    """
    Factory fixture to insert users directly, bypassing registration.
    """
    hasher = PasswordHasher(rounds=4)

    async def _create_user(
        username: str = "jdoe",
        email: str = "jdoe@example.com",
        password: str = "secret1",
        role_id: int = Role.USER,
    ) -> User:
        user = User(
            username=username,
            email=email,
            hashed_password=hasher.hash(password),
            role_id=role_id,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user

@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client with the app's database session overridden for testing."""
    async def override_get_db_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

@pytest_asyncio.fixture()
async def auth_headers(client):
    """
    Helper fixture to obtain Authorization headers via the login endpoint.
    """
    async def _get_headers(username: str, password: str) -> dict:
        resp = await client.post(
            "/api/auth/login",
            json={"username": username, "password": password},
        )
        assert resp.status_code == 200, resp.text
        token = resp.json()["data"]["accessToken"]
        return {"Authorization": f"Bearer {token}"}

    return _get_headers
