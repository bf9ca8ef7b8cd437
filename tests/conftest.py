"""Shared test fixtures and configuration."""
import pytest
import os
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("MOCK_MODE", "true")
os.environ.setdefault("SUPPORT_PHONE_NUMBER", "+15555550100")
os.environ.setdefault("VAPI_PHONE_NUMBER_ID", "test-phone-number-id")
os.environ.setdefault("CALL_STORE", "memory")

from support_bridge.main import app
from support_bridge.db.models import Base
from support_bridge.core.dependencies import get_event_bus, get_orchestrator
from support_bridge.services.calls.orchestrator import CallOrchestrator
from support_bridge.services.calls.store import InMemoryCallStore
from support_bridge.services.persistence.calls import SqlCallStore
from support_bridge.services.provider.mock import MockVoiceProvider
from support_bridge.services.realtime.bus import CallEventBus
from support_bridge.services.transcript.recordings import RecordingStore


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MOCK_STEP_SECONDS = 3.0


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SteppingWallClock:
    """Wall clock that moves forward one second per reading."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return SteppingWallClock()


@pytest.fixture
def mock_provider(fake_clock):
    """Simulated provider driven by the fake clock."""
    return MockVoiceProvider(step_seconds=MOCK_STEP_SECONDS, clock=fake_clock)


@pytest.fixture
def call_store():
    return InMemoryCallStore()


@pytest.fixture
def event_bus():
    return CallEventBus()


@pytest.fixture
def recording_store(tmp_path):
    return RecordingStore(str(tmp_path / "recordings"))


@pytest.fixture
def make_orchestrator(call_store, mock_provider, event_bus, recording_store, wall_clock):
    """Build an orchestrator over the shared fixtures, with optional overrides."""
    def _make(**overrides) -> CallOrchestrator:
        options = dict(
            store=call_store,
            provider=mock_provider,
            event_bus=event_bus,
            recording_store=recording_store,
            support_phone_number="+15555550100",
            phone_number_id="test-phone-number-id",
            clock=wall_clock,
        )
        options.update(overrides)
        return CallOrchestrator(**options)
    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture
def test_client(orchestrator, event_bus):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_event_bus] = lambda: event_bus

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
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
async def sql_call_store(test_db_engine):
    """SQL-backed call store on the test database."""
    sessionmaker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return SqlCallStore(sessionmaker)
