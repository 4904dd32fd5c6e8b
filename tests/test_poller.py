# tests/test_poller.py

from __future__ import annotations

import pytest

from image_studio.schemas.remote_task import RetryPolicy
from image_studio.services.errors import (
    PollTimeoutError,
    RequestTimeoutError,
    StatusCheckError,
    StatusRejectedError,
    TaskCancelledError,
)
from image_studio.services.poller import StatusPoller, classify_status

from .fakes import FakeRemoteClient, RecordingSleep


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("pending", "PROCESSING"),
        ("running", "PROCESSING"),
        ("processing", "PROCESSING"),
        ("RUNNING", "PROCESSING"),
        ("success", "SUCCESS"),
        ("completed", "SUCCESS"),
        ("SUCCESS", "SUCCESS"),
        ("failed", "FAILED"),
        (" Failed ", "FAILED"),
        ("TASK_SUCCESS", "SUCCESS"),
        ("queued_weird", "PROCESSING"),
        ("", "PROCESSING"),
        (None, "PROCESSING"),
        (42, "PROCESSING"),
        ("failed_then_success", "PROCESSING"),
    ],
)
def test_classify_status(raw, expected) -> None:
    assert classify_status(raw) == expected


def test_unknown_status_never_classifies_as_failed() -> None:
    for raw in ("queued_weird", "unknown", "???", "ERRORISH", "cancel-pending"):
        assert classify_status(raw) != "FAILED"


def _poller(remote: FakeRemoteClient, sleep: RecordingSleep, **kwargs) -> StatusPoller:
    return StatusPoller(
        remote,
        interval=kwargs.pop("interval", 2.0),
        max_attempts=kwargs.pop("max_attempts", 300),
        retry=RetryPolicy(max_attempts=3, base_delay=2.0, multiplier=2.0),
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_check_retries_with_backoff_then_reports_processing() -> None:
    remote = FakeRemoteClient(statuses=[
        StatusCheckError("HTTP 502"),
        RequestTimeoutError("slow"),
        StatusCheckError("not json"),
    ])
    sleep = RecordingSleep()

    state = await _poller(remote, sleep).check("T1")

    assert state == "PROCESSING"
    assert len(remote.status_calls) == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_check_recovers_after_transient_failure() -> None:
    remote = FakeRemoteClient(statuses=[StatusCheckError("blip"), "success"])
    sleep = RecordingSleep()

    assert await _poller(remote, sleep).check("T1") == "SUCCESS"
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_wait_returns_first_terminal_state() -> None:
    remote = FakeRemoteClient(statuses=["pending", "running", "failed", "success"])
    sleep = RecordingSleep()

    assert await _poller(remote, sleep).wait("T1") == "FAILED"
    assert len(remote.status_calls) == 3
    assert sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
async def test_wait_gives_up_after_exactly_the_attempt_budget() -> None:
    remote = FakeRemoteClient(statuses=["processing"] * 400)
    sleep = RecordingSleep()

    with pytest.raises(PollTimeoutError) as info:
        await _poller(remote, sleep).wait("T1")

    assert info.value.attempts == 300
    assert isinstance(info.value, TimeoutError)
    assert len(remote.status_calls) == 300
    assert sleep.delays == [2.0] * 300


@pytest.mark.asyncio
async def test_wait_stops_when_cancelled() -> None:
    remote = FakeRemoteClient(statuses=["processing"] * 10)
    sleep = RecordingSleep()
    checks_before_cancel = 2

    def should_stop() -> bool:
        return len(remote.status_calls) >= checks_before_cancel

    with pytest.raises(TaskCancelledError):
        await _poller(remote, sleep).wait("T1", should_stop=should_stop)

    assert len(remote.status_calls) == checks_before_cancel
    # Cancellation is checked before sleeping, so no sleep follows the last check.
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_check_does_not_retry_a_provider_rejection() -> None:
    remote = FakeRemoteClient(statuses=[StatusRejectedError("APIKEY_INVALID", code=1)] * 9)
    sleep = RecordingSleep()

    with pytest.raises(StatusRejectedError, match="APIKEY_INVALID"):
        await _poller(remote, sleep).check("T1")

    assert len(remote.status_calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_wait_surfaces_a_provider_rejection_immediately() -> None:
    remote = FakeRemoteClient(statuses=["running", StatusRejectedError("APIKEY_INVALID", code=1)])
    sleep = RecordingSleep()

    with pytest.raises(StatusRejectedError):
        await _poller(remote, sleep).wait("T1")

    assert len(remote.status_calls) == 2
    assert sleep.delays == [2.0]
