"""
Test configuration and fixtures for CV Transformer.

Provides an in-memory SQLite database, a clock the tests can move, mocked
Stripe/Postmark collaborators, and an async HTTP client bound to the app.
"""

import os

# Must be set before app.config.settings is first imported.
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-at-least-32-bytes!"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import time
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.config.settings import get_settings
from app.domain.services import SubscriptionService
from app.domain.subscription import AuthContext, AuthSource, User, UserRole
from app.infrastructure.db import models  # noqa: F401  (registers tables)
from app.infrastructure.db.repositories import (
    ActivityLogRepository,
    PaymentEventRepository,
    SubscriptionRepository,
    UserRepository,
)


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def subscription_repo(session) -> SubscriptionRepository:
    return SubscriptionRepository(session)


@pytest.fixture
def user_repo(session) -> UserRepository:
    return UserRepository(session)


@pytest.fixture
def activity_repo(session) -> ActivityLogRepository:
    return ActivityLogRepository(session)


@pytest.fixture
def payment_event_repo(session) -> PaymentEventRepository:
    return PaymentEventRepository(session)


@pytest.fixture
def service(session, subscription_repo, activity_repo, clock) -> SubscriptionService:
    return SubscriptionService(
        session,
        subscription_repo,
        activity_repo,
        clock=clock,
        max_attempts=2,
    )


@pytest.fixture
def make_user(session, user_repo):
    """Factory: insert a user and return its AuthContext."""

    async def _make(
        role: UserRole = UserRole.USER,
        email: Optional[str] = None,
        source: AuthSource = AuthSource.SESSION,
    ) -> AuthContext:
        user_id = uuid4()
        user = await user_repo.get_or_create(
            user_id,
            email or f"{user_id.hex[:8]}@example.com",
            role=role,
        )
        await session.commit()
        return AuthContext(user=user, source=source)

    return _make


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_stripe_service():
    """Mock for StripeService."""
    mock = MagicMock()
    mock.is_configured = True
    mock.create_checkout_session = AsyncMock(
        return_value=MagicMock(id="cs_test_123", url="https://checkout.stripe.com/c/cs_test_123")
    )
    mock.change_plan = AsyncMock()
    mock.cancel_subscription = AsyncMock()
    return mock


@pytest.fixture
def mock_email_service():
    """Mock for EmailService."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=True)
    return mock


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(session_factory, mock_stripe_service, mock_email_service):
    """FastAPI app wired to the test database and mocked collaborators."""
    from app.main import app
    from app.infrastructure.db.database import get_session
    from app.infrastructure.payments.stripe_service import get_stripe_service
    from app.infrastructure.services.email_service import get_email_service

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_stripe_service] = lambda: mock_stripe_service
    app.dependency_overrides[get_email_service] = lambda: mock_email_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def make_token(
    user_id: UUID,
    email: Optional[str] = "user@example.com",
    expires_in: int = 3600,
    secret: Optional[str] = None,
) -> str:
    """Sign a session token the way the auth layer does."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "exp": int(time.time()) + expires_in,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm="HS256")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id, user.email)}"}


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def headers_for():
    return auth_headers
