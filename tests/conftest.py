"""Shared fixtures for the scholar project service tests."""

from __future__ import annotations

import os
from dataclasses import replace
from unittest.mock import AsyncMock

# Required settings must exist before the app module is imported.
os.environ.setdefault("SCHOLAR_ALLOWED_ORIGINS", "http://localhost")
os.environ["SCHOLAR_BROKER_PROVIDER"] = "memory"
os.environ.pop("SCHOLAR_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.api.deps import Services, build_services  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.jobs.listeners import ListenerRegistry  # noqa: E402
from app.jobs.registry import JobRegistry  # noqa: E402
from app.main import create_app  # noqa: E402
from app.messaging.memory import InMemoryPublisher  # noqa: E402
from app.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402

TASK_SECRET = "test-task-secret"


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  # Bypass the cache so each test sees a fresh, fully-populated value.
  return replace(get_settings.__wrapped__(), task_secret=TASK_SECRET, gemini_api_key=None)


@pytest.fixture
def repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def jobs(repo: InMemoryJobsRepository) -> JobRegistry:
  return JobRegistry(repo)


@pytest.fixture
def listeners() -> ListenerRegistry:
  return ListenerRegistry()


@pytest.fixture
def publisher() -> InMemoryPublisher:
  return InMemoryPublisher()


@pytest.fixture
def generator() -> AsyncMock:
  fake = AsyncMock()
  fake.generate.return_value = '{"commandType": "GENERAL_QUESTION", "parameters": {}, "response": "Sure."}'
  return fake


@pytest.fixture
def services(settings: Settings, repo: InMemoryJobsRepository, publisher: InMemoryPublisher, generator: AsyncMock) -> Services:
  return build_services(settings, repo=repo, publisher=publisher, generator=generator)


@pytest.fixture
def app(settings: Settings, services: Services):
  return create_app(settings, services=services)


@pytest.fixture
async def async_client(app):
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client


@pytest.fixture
def task_headers() -> dict[str, str]:
  return {"authorization": f"Bearer {TASK_SECRET}"}
