"""Shared fakes and fixtures for the study mentor tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from study_mentor.config.schema import Settings
from study_mentor.errors import GatewayError
from study_mentor.learning.models import ImageAttachment
from study_mentor.storage.memory_store import InMemoryDocumentStore
from study_mentor.system import MentorSystem


class FakeResponse:
    """Just enough of `requests.Response` for the clients under test."""

    def __init__(self, status_code: int = 200, payload: Any = None, reason: str = "OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttpSession:
    """Records every POST and replays queued responses or exceptions in order."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGateway:
    """Gateway double returning a fixed reply, or raising the configured error."""

    def __init__(self, reply: str = "Here is a hint.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def generate(self, prompt: str, image: Optional[ImageAttachment] = None) -> str:
        self.calls.append({"prompt": prompt, "image": image})
        if self.error is not None:
            raise self.error
        return self.reply


class DelayedDeliveryStore(InMemoryDocumentStore):
    """Memory store whose watchers are called from a timer thread, as a hosted store's are."""

    def __init__(self, delay: float = 0.05, **kwargs: Any):
        super().__init__(**kwargs)
        self.delay = delay

    def watch_collection(self, collection_path, on_snapshot, on_error=None):
        def deliver_later(documents):
            timer = threading.Timer(self.delay, on_snapshot, args=(documents,))
            timer.daemon = True
            timer.start()

        return super().watch_collection(collection_path, deliver_later, on_error)


class TickingClock:
    """Deterministic server clock: each reading is one second after the previous one."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def memory_settings() -> Settings:
    """Settings for the in-process backend."""
    return Settings(backend="memory", app_id="test-app")


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def memory_store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def system(memory_settings, memory_store, fake_gateway) -> MentorSystem:
    return MentorSystem(memory_settings, gateway=fake_gateway, memory_store=memory_store)


@pytest.fixture
def service(system):
    """A signed-in session service; the subscription is released afterwards."""
    session_service = system.new_session()
    session_service.start()
    yield session_service
    session_service.close()


@pytest.fixture
def gateway_failure() -> GatewayError:
    return GatewayError("API request failed: 500 Internal Server Error", status_code=500)
