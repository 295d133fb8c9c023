"""
Shared fixtures: a JobService wired to in-memory fakes, and a TestClient
over the full app using the same fakes.
"""

import pytest
from fastapi.testclient import TestClient

from training_gateway.config import Settings
from training_gateway.jobs.registry import JobRegistry
from training_gateway.jobs.service import JobService
from training_gateway.main import create_app
from training_gateway.storage.temp_uploads import TempUploadStore

from tests.fakes import FakeContentStore, RecordingTrigger


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def content_store():
    return FakeContentStore()


@pytest.fixture
def trigger():
    return RecordingTrigger()


@pytest.fixture
def temp_store(tmp_path):
    return TempUploadStore(str(tmp_path / "uploads"), max_bytes=1024)


@pytest.fixture
async def service(registry, content_store, trigger, temp_store):
    service = JobService(registry, content_store, trigger, temp_store)
    yield service
    await service.drain(timeout=5)


@pytest.fixture
def settings():
    return Settings(_env_file=None, callback_url="https://gateway.example.com/api/callback")


@pytest.fixture
def app(settings, registry, content_store, trigger, temp_store):
    return create_app(
        settings=settings,
        content_store=content_store,
        trigger=trigger,
        registry=registry,
        temp_store=temp_store,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
