"""Shared test configuration and fixtures.

Key principles:
- No Mongo server needed: repositories run against the in-memory FakeDatabase.
- HTTP tests go through the local ASGI app with httpx.ASGITransport and
  dependency overrides (startup hooks are not run).
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
"""

from typing import AsyncGenerator

import sys
from pathlib import Path

import pytest
import httpx
from httpx import ASGITransport

# Ensure backend root is on sys.path so that `server` and `app` are importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from app.config import get_settings  # noqa: E402
from fakes import FakeBookingStore, FakeDatabase, FakeGateway  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch) -> None:
    """Isolate tests from the developer's env and the settings cache."""

    for name in (
        "WEBHOOK_MAX_RETRIES",
        "WEBHOOK_RETRY_DELAY_MS",
        "ASAAS_WEBHOOK_TOKEN",
        "WHATSAPP_ACCESS_TOKEN",
        "WHATSAPP_PHONE_NUMBER_ID",
        "WHATSAPP_INIT_RETRIES",
        "WHATSAPP_INIT_RETRY_DELAY_MS",
        "ENABLE_CONFIRMATION_EMAIL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def booking_doc() -> dict:
    return {
        "name": "Maria Souza",
        "email": "maria@example.com",
        "phone": "(11) 99999-8888",
        "activity": "Trilha da Cachoeira",
        "date": "2099-03-15",
        "time": "09:00",
        "participants": 3,
        "amount": 240.0,
        "status": "awaiting",
    }


@pytest.fixture
def booking_store(booking_doc) -> FakeBookingStore:
    return FakeBookingStore({"abc123": booking_doc, "xyz": dict(booking_doc)})


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def recording_queue():
    """Stand-in for WebhookTaskQueue that only records enqueued events."""

    class RecordingQueue:
        def __init__(self) -> None:
            self.events = []

        def enqueue(self, event):
            self.events.append(event)

        def snapshot(self):
            return {"pending": len(self.events), "running": False}

    return RecordingQueue()


@pytest.fixture
async def async_client(recording_queue) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, queue dependency overridden."""

    from server import app
    from app.deps import get_webhook_queue

    app.dependency_overrides[get_webhook_queue] = lambda: recording_queue
    transport = ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test", timeout=30.0) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
