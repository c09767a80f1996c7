"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- A per-test database (SQLite file unless DATABASE_TEST_URL is set)
- The application context with a mocked responder
- HTTP client for API testing with real bearer-token auth
- Patients, tasks and auth sessions
"""

import os
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./recoveryline-unused.db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recoveryline import models  # noqa: F401  registers tables on Base.metadata
from recoveryline.config import Settings
from recoveryline.context import AppContext, get_app_context
from recoveryline.database import Base, get_db
from recoveryline.main import app
from recoveryline.models.auth import AuthSession, UserRole
from recoveryline.models.patient import Patient
from recoveryline.models.task import TaskType
from recoveryline.realtime import RealtimeHub
from recoveryline.repositories.task import TaskRepository
from recoveryline.schemas.responder import ResponderReply
from recoveryline.services.assistant import AssistantService
from recoveryline.services.recovery_day import date_for_day
from recoveryline.utils.time_helpers import utc_now, utc_today

TENANT_ID = uuid.UUID("00000000-0000-4000-8000-0000000000aa")
PATIENT_USER_ID = "patient-user"
PROVIDER_USER_ID = "provider-user"
SURGERY_DAYS_AGO = 3

ASSISTANT_REPLY = "That's good to hear. How is your mobility today?"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine with automatic schema management.

    Creates all tables before tests, drops them after.
    Uses DATABASE_TEST_URL env var if set, otherwise a fresh SQLite file.
    """
    db_url = os.environ.get("DATABASE_TEST_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """Test database session for direct repository calls."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Application Context Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        openai_api_key="",
        subscription_max_retries=3,
        subscription_retry_base_delay=0.01,
        poll_interval_seconds=0.01,
        read_retry_attempts=2,
    )


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub(queue_size=50)


@pytest.fixture
def responder() -> AsyncMock:
    """Responder that answers every message with ASSISTANT_REPLY."""
    mock = AsyncMock()
    mock.reply.return_value = ResponderReply(reply=ASSISTANT_REPLY)
    return mock


@pytest.fixture
def app_context(test_settings, session_factory, hub, responder) -> AppContext:
    return AppContext(
        settings=test_settings,
        session_factory=session_factory,
        hub=hub,
        responder=responder,
        assistant=AssistantService(None),
    )


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(app_context, session_factory):
    """Async test client for FastAPI app with test database and context.

    Auth is real: requests must carry a token created with `auth_headers`
    or `provider_headers`.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_context] = lambda: app_context

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_app_context, None)


@pytest.fixture
def make_token(session_factory):
    """Create an auth session and return its bearer token."""

    async def _make(user_id: str, role: UserRole = UserRole.PATIENT, expires_in: timedelta = timedelta(hours=1)):
        token = uuid.uuid4().hex
        async with session_factory() as session:
            session.add(AuthSession(token=token, user_id=user_id, role=role, expires_at=utc_now() + expires_in))
            await session.commit()
        return token

    return _make


@pytest_asyncio.fixture
async def auth_headers(make_token) -> dict[str, str]:
    """Bearer headers for the patient fixture's own user."""
    token = await make_token(PATIENT_USER_ID, UserRole.PATIENT)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def provider_headers(make_token) -> dict[str, str]:
    token = await make_token(PROVIDER_USER_ID, UserRole.PROVIDER)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Domain Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def patient(db_session) -> Patient:
    """Patient three days after a knee replacement."""
    patient = Patient(
        tenant_id=TENANT_ID,
        user_id=PATIENT_USER_ID,
        first_name="Alex",
        last_name="Rivera",
        surgery_date=utc_today() - timedelta(days=SURGERY_DAYS_AGO),
        surgery_type="Total knee replacement",
    )
    db_session.add(patient)
    await db_session.commit()
    return patient


@pytest_asyncio.fixture
async def todays_tasks(db_session, patient) -> list:
    """Two tasks scheduled for today's recovery day."""
    repo = TaskRepository(db_session)
    today = date_for_day(patient.surgery_date, SURGERY_DAYS_AGO)
    return [
        await repo.create(patient.id, TaskType.EXERCISE, "Heel slides", today, "2 sets of 10"),
        await repo.create(patient.id, TaskType.CHECK_IN, "Daily pain check-in", today),
    ]
