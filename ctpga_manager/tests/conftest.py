"""
Shared fixtures: an isolated SQLite database, fixed settings and an
in-process HTTP client.
"""
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ctpga_manager.auth.jwt import Principal, TokenIssuer
from ctpga_manager.auth.models import User
from ctpga_manager.config import Settings, get_settings
from ctpga_manager.database import create_tables, get_db_session
from ctpga_manager.main import create_app

TEST_SECRET = "test-secret-key-0123456789abcdefghij"
TEST_PASSWORD = "Password123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret=TEST_SECRET,
        jwt_expire="1h",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
    )


@pytest.fixture
def issuer(settings):
    return TokenIssuer.from_settings(settings)


@pytest.fixture
def expired_token():
    """Token signed with the test secret whose expiry is already past."""
    payload = {
        "user": {"id": "expired-user", "role": "admin"},
        "exp": datetime.now(timezone.utc) - timedelta(minutes=5),
    }
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


@pytest_asyncio.fixture
async def session_factory(settings):
    engine = create_async_engine(settings.database_url)
    await create_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(settings, session_factory):
    app = create_app()

    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac


@pytest.fixture
def make_user(db):
    """Create a user directly in the database."""
    async def _make_user(role="instructor", status="active", email=None, name=None, area=None, password=TEST_PASSWORD):
        user = User(
            name=name or f"Test {role}",
            email=email or f"{role}_{uuid.uuid4().hex[:8]}@example.com",
            hashed_password=User.get_password_hash(password),
            role=role,
            status=status,
            area=area,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(issuer):
    def _auth_headers(user):
        return {"x-auth-token": issuer.issue(Principal(id=user.id, role=user.role))}

    return _auth_headers


@pytest.fixture
def password():
    """Password of every user created with ``make_user``."""
    return TEST_PASSWORD
