# tests/conftest.py

from __future__ import annotations

import pytest

from image_studio.config import get_settings
from image_studio.schemas.remote_task import RetryPolicy
from image_studio.services.lifecycle import TaskLifecycleController
from image_studio.services.poller import StatusPoller
from image_studio.services.runninghub import RunningHubClient
from image_studio.services.workflows import default_workflows

from .fakes import FakeRemoteClient, FakeSession, RecordingSleep, make_image_bytes


@pytest.fixture()
def image_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def client(session: FakeSession) -> RunningHubClient:
    return RunningHubClient(
        base_url="https://hub.test/",
        api_key="test-key",
        workflows=default_workflows(),
        timeout=5.0,
        session=session,
    )


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture()
def notifications() -> list[tuple[str, dict]]:
    return []


@pytest.fixture()
def controller(remote: FakeRemoteClient, sleep: RecordingSleep, notifications) -> TaskLifecycleController:
    """Controller wired to the scripted client; sleeps return immediately."""

    async def notify(event_type: str, data: dict) -> None:
        notifications.append((event_type, data))

    poller = StatusPoller(
        remote,
        interval=2.0,
        max_attempts=300,
        retry=RetryPolicy(max_attempts=3, base_delay=2.0, multiplier=2.0),
        sleep=sleep,
    )
    return TaskLifecycleController(remote, poller, notify=notify)


@pytest.fixture()
def configured_env(monkeypatch: pytest.MonkeyPatch):
    """Provide a RunningHub key through the environment for router tests."""
    monkeypatch.setenv("RUNNINGHUB_API_KEY", "env-key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
