"""
Pytest configuration and fixtures for the activity audit tests.

This module provides shared fixtures for database, users, sessions and an
HTTP test client.
"""

from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from activity_audit.config import Settings, get_settings
from activity_audit.database import Base, create_session_factory, get_db, utcnow
from activity_audit.main import create_app
from activity_audit.models.session import UserSession
from activity_audit.models.user import User, UserRole
from activity_audit.schemas.session import SessionCreate
from activity_audit.services.session_service import SessionService
from activity_audit.utils.security import generate_refresh_token, generate_session_token


# ============================================================================
# Test Configuration
# ============================================================================

@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Provide test-specific settings.

    Uses in-memory SQLite database and keeps the scheduler out of the app.
    """
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        DEBUG=True,
        SCHEDULER_ENABLED=False,
        ACTIVITY_TRACKING_ENABLED=True,
    )


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def async_engine(test_settings: Settings):
    """
    Create async database engine for tests.

    Uses in-memory SQLite with StaticPool to ensure all connections
    share the same in-memory database.
    """
    engine = create_async_engine(
        test_settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker:
    """Session factory bound to the test engine, as the app builds it at startup."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide database session for tests.

    Creates a new session for each test and rolls back after the test.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def app(session_factory: async_sessionmaker, db_session: AsyncSession, test_settings: Settings):
    """
    Provide the application wired to the test database.

    Route handlers share ``db_session`` so fixture data is visible to them;
    the activity pipeline opens its own sessions from ``session_factory``.
    """
    application = create_app(test_settings)
    application.state.session_factory = session_factory

    async def override_get_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    def override_get_settings():
        return test_settings

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_settings] = override_get_settings

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide HTTP test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


# ============================================================================
# User Fixtures
# ============================================================================

async def _create_user(db_session: AsyncSession, email: str, role: UserRole) -> User:
    user = User(
        email=email,
        first_name=role.value.replace("_", " ").title(),
        last_name="User",
        role=role.value,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def super_admin_user(db_session: AsyncSession) -> User:
    """Create and return a super admin user for testing."""
    return await _create_user(db_session, "root@test.com", UserRole.SUPER_ADMIN)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create and return an admin user for testing."""
    return await _create_user(db_session, "admin@test.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def customer_user(db_session: AsyncSession) -> User:
    """Create and return a customer user for testing."""
    return await _create_user(db_session, "customer@test.com", UserRole.CUSTOMER)


# ============================================================================
# Session Fixtures
# ============================================================================

async def create_user_session(
    db_session: AsyncSession,
    user: User,
    expires_in: timedelta = timedelta(hours=24),
    **kwargs
) -> UserSession:
    """Create an ACTIVE session for a user through the session store."""
    data = SessionCreate(
        user_id=user.id,
        session_token=generate_session_token(),
        refresh_token=generate_refresh_token(),
        expires_at=utcnow() + expires_in,
        **kwargs
    )
    return await SessionService(db_session).create_session(data)


@pytest_asyncio.fixture
async def super_admin_session(db_session: AsyncSession, super_admin_user: User) -> UserSession:
    return await create_user_session(db_session, super_admin_user)


@pytest_asyncio.fixture
async def admin_session(db_session: AsyncSession, admin_user: User) -> UserSession:
    return await create_user_session(db_session, admin_user)


@pytest_asyncio.fixture
async def customer_session(db_session: AsyncSession, customer_user: User) -> UserSession:
    return await create_user_session(
        db_session,
        customer_user,
        user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
                   "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
    )


def auth_headers(user_session: UserSession) -> dict:
    """Bearer header for a session."""
    return {"Authorization": f"Bearer {user_session.session_token}"}


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """
    Configure pytest markers.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
