"""Pytest configuration and fixtures for testing.

Every test gets its own SQLite file database, so tests never share state.
"""

import os
from datetime import timedelta

# Settings are read at import time; keep hashing cheap and the store local.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./recipebox-test.db")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("SMTP_HOST", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from recipebox.config import Settings
from recipebox.core.rate_limit import InMemoryRateLimiter
from recipebox.database import create_engine_for, create_session_factory, init_db
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.auth_service import AuthService
from recipebox.services.email_service import MockEmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.password_reset_service import PasswordResetService
from recipebox.services.token_service import TokenService
from recipebox.services.user_service import UserService
from recipebox.services.verification_service import VerificationService


PASSWORD = "Passw0rd!"


@pytest.fixture
def settings():
    """Settings for tests; override per test with settings.model_copy(update=...)."""
    return Settings(
        SECRET_KEY="test-secret-key",
        BCRYPT_ROUNDS=4,
        SWEEPER_ENABLED=False,
        SMTP_HOST="",
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create a test database engine on a fresh SQLite file."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def uow(session):
    return UnitOfWork(session)


@pytest.fixture
def email_service(settings):
    return MockEmailService(settings)


@pytest_asyncio.fixture
async def dispatcher():
    dispatcher = NotificationDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def email_limiter():
    return InMemoryRateLimiter(100, timedelta(minutes=60))


@pytest.fixture
def token_service(uow, settings):
    return TokenService(uow, settings)


@pytest.fixture
def auth_service(uow, token_service, email_service, dispatcher, session_factory, email_limiter, settings):
    return AuthService(uow, token_service, email_service, dispatcher, session_factory, email_limiter, settings)


@pytest.fixture
def reset_service(uow, token_service, email_service, dispatcher, email_limiter, settings):
    return PasswordResetService(uow, token_service, email_service, dispatcher, email_limiter, settings)


@pytest.fixture
def verification_service(uow, email_service, dispatcher, email_limiter, settings):
    return VerificationService(uow, email_service, dispatcher, email_limiter, settings)


@pytest.fixture
def user_service(uow, token_service, email_service, dispatcher, settings):
    return UserService(uow, token_service, email_service, dispatcher, settings)


@pytest_asyncio.fixture
async def registered(auth_service, dispatcher):
    """Register alice and let her verification email go out."""
    user, tokens = await auth_service.register(
        username="alice",
        email="alice@example.com",
        password=PASSWORD,
        first_name="Alice",
        ip_address="10.0.0.1",
        user_agent="pytest"
    )
    await dispatcher.drain()
    return user, tokens


@pytest.fixture
def app(engine, settings, email_service):
    from recipebox.main import create_app

    return create_app(settings=settings, engine=engine, email_service=email_service)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.dispatcher.drain()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests with no database")
    config.addinivalue_line("markers", "integration: Tests against a real (SQLite) database")
