"""
Pytest configuration and shared fixtures for testing.
Each test gets its own SQLite database file, a fresh background queue and a
recording notifier wired into the account service.
"""

import os
import tempfile

# Environment must be set before any directory_api imports
os.environ["TEST_MODE"] = "1"
os.environ["ENABLE_METRICS"] = "true"
os.environ["SKIP_ENV_FILE"] = "1"
os.environ.setdefault("APP_ENV", "test")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='directory_api_')}/app.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["CACHE_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAIL_ENABLED"] = "false"
os.environ["LOG_FILE"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from directory_api import db as app_db
from directory_api.db import Base
from directory_api.dependencies import build_account_service, get_account_service
from directory_api.errors import DeliveryError
from directory_api.main import app
from directory_api.models import VerificationToken
from directory_api.tasks import TaskQueue


class RecordingNotifier:
    """Notifier double that keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise DeliveryError(f"SMTP relay refused message to {to}")
        self.sent.append({"to": to, "subject": subject, "html": html_body})


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """Create a per-test SQLite database and point the app's session factory at it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,  # Avoid connection pooling in tests
    )
    test_session_maker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    original_session = app_db.async_session
    app_db.async_session = test_session_maker

    # Tests create tables directly; production uses Alembic migrations
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    app_db.async_session = original_session
    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return app_db.async_session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def task_queue():
    queue = TaskQueue(workers=2)
    yield queue
    await queue.stop(timeout=5)


@pytest.fixture
def account_service(session_factory, notifier, task_queue):
    return build_account_service(session_factory, notifier=notifier, tasks=task_queue)


@pytest_asyncio.fixture(scope="function")
async def client(account_service):
    """Create a test HTTP client wired to the per-test account service."""
    app.dependency_overrides[get_account_service] = lambda: account_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def api_prefix():
    from directory_api.config import settings
    return settings.API_PREFIX


@pytest.fixture
def sample_signup():
    """Signup body with mixed-case input that normalization must clean up."""
    return {
        "email": "Foo@Bar.com",
        "password": "secret1",
        "firstname": "ana",
        "lastname": "lee",
    }


@pytest.fixture
def verification_tokens(session_factory):
    """Read back the verification tokens recorded for an account."""
    async def _tokens(account_id: int) -> list[VerificationToken]:
        async with session_factory() as session:
            result = await session.execute(
                select(VerificationToken).where(VerificationToken.user_id == account_id)
            )
            return list(result.scalars().all())

    return _tokens
