"""Pytest configuration and fixtures."""

import asyncio
import os
from functools import partial

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import outlight.models  # noqa: F401
from outlight.database import Base
from outlight.providers.base import AsyncProvider, SyncProvider, TaskHandle
from outlight.schemas.job import Failure, Success
from outlight.services.job_client import JobClient
from outlight.services.polling import Pending


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    # In-memory SQLite shared across threads (TestClient runs routes elsewhere)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    yield db

    db.close()


class FakeImageProvider(SyncProvider):
    """Synchronous provider answering from a script instead of the network."""

    label = "Fake image"

    def __init__(self, delays=None, delay=0.0, failures=(), broken=()):
        self.delays = delays or {}
        self.delay = delay
        self.failures = set(failures)
        self.broken = set(broken)
        self.calls = []

    def is_configured(self):
        return True

    async def generate(self, client, request):
        self.calls.append(request.prompt)
        await asyncio.sleep(self.delays.get(request.prompt, self.delay))
        if request.prompt in self.broken:
            raise httpx.ConnectError("connection refused")
        if request.prompt in self.failures:
            return Failure(message=f"rejected: {request.prompt}", diagnostic={"prompt": request.prompt})
        return Success(artifact_url=f"https://cdn.test/{request.prompt}.png")


class FakeTaskProvider(AsyncProvider):
    """Create/poll provider whose tasks succeed unless listed as stuck."""

    label = "Fake task"

    def __init__(self, stuck=(), deadline=0.2):
        self.stuck = set(stuck)
        self.deadline = deadline
        self.fetches = 0

    def is_configured(self):
        return True

    def needs_reference(self, request):
        return False

    async def create(self, client, request):
        return TaskHandle(task_id=f"task-{request.prompt}", fetch=partial(self._fetch, request.prompt))

    async def _fetch(self, prompt):
        self.fetches += 1
        if prompt in self.stuck:
            return {"state": "generating"}
        return {"state": "success", "url": f"https://cdn.test/{prompt}.mp4"}

    def resolve(self, raw):
        if raw["state"] == "success":
            return Success(artifact_url=raw["url"])
        return Pending(state=raw["state"])


@pytest.fixture
def image_provider():
    return FakeImageProvider()


@pytest.fixture
def task_provider():
    return FakeTaskProvider()


@pytest.fixture
def job_client(image_provider, task_provider):
    """Job client wired to the fake providers with a fast poll cadence."""
    return JobClient(
        providers={"fake-image": image_provider, "fake-task": task_provider},
        poll_interval=0.01,
    )
