"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_BASE_URL", "https://app.example.com")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("QSTASH_TOKEN", "test-token")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import durable_runs.models  # noqa: E402,F401
from durable_runs.database import Base  # noqa: E402
from durable_runs.services.run_engine import RunEngine  # noqa: E402
from durable_runs.services.run_store import RunStore  # noqa: E402
from tests.helpers import FakePublisher, RecordingStep, make_registry  # noqa: E402


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    # Use in-memory SQLite for testing; one shared connection across threads
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    yield db

    db.close()
    engine.dispose()


@pytest.fixture
def store(test_db):
    return RunStore(test_db)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def steps():
    """Closures for the start and complete steps."""
    return {"start": RecordingStep(), "complete": RecordingStep()}


@pytest.fixture
def registry(steps):
    return make_registry(steps["start"], steps["complete"])


@pytest.fixture
def engine(store, registry, publisher):
    return RunEngine(store, registry, publisher)


@pytest.fixture
def run(store):
    """A pending research run."""
    return store.create_run(uuid.uuid4(), "research", {"source": "test"})
