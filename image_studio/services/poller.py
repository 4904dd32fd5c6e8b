"""Status polling for RunningHub tasks."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Protocol

from image_studio.schemas.remote_task import RetryPolicy, TaskState
from image_studio.services.errors import (
    PollTimeoutError,
    RequestTimeoutError,
    StatusCheckError,
    StatusRejectedError,
    TaskCancelledError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_STATUS_MAP: dict[str, TaskState] = {
    "pending": "PROCESSING",
    "processing": "PROCESSING",
    "running": "PROCESSING",
    "success": "SUCCESS",
    "completed": "SUCCESS",
    "failed": "FAILED",
}

_TOKEN_SPLIT = re.compile(r"[^a-z]+")


class StatusSource(Protocol):
    def check_status(self, task_id: str) -> str: ...


def classify_status(raw: Any) -> TaskState:
    """
    Map a provider status to PROCESSING, SUCCESS or FAILED.

    Exact (case-insensitive) match first, then a word match on values like
    ``TASK_SUCCESS``. Anything unknown or contradictory keeps waiting.
    """
    if not isinstance(raw, str):
        return "PROCESSING"
    key = raw.strip().lower()
    if key in _STATUS_MAP:
        return _STATUS_MAP[key]

    found = {_STATUS_MAP[t] for t in _TOKEN_SPLIT.split(key) if t in _STATUS_MAP}
    if len(found) == 1:
        return found.pop()
    return "PROCESSING"


class StatusPoller:
    """
    Polls one task until SUCCESS or FAILED.

    Each status check is retried with exponential backoff on network-level
    failure; when the retries run out the check reports PROCESSING so a
    transient outage never ends a long job early. An error envelope from
    the provider (``StatusRejectedError``) is raised at once.
    """

    def __init__(
        self,
        client: StatusSource,
        *,
        interval: float = 2.0,
        max_attempts: int = 300,
        retry: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    async def check(self, task_id: str, *, should_stop: Callable[[], bool] | None = None) -> TaskState:
        """One logical status check (with retries)."""
        attempts = self.retry.max_attempts
        for attempt in range(attempts):
            try:
                raw = await asyncio.to_thread(self.client.check_status, task_id)
            except StatusRejectedError:
                raise
            except (StatusCheckError, RequestTimeoutError) as exc:
                if attempt + 1 >= attempts:
                    logger.warning(
                        "Status check for %s failed %d time(s), treating as PROCESSING: %s",
                        task_id,
                        attempts,
                        exc,
                    )
                    return "PROCESSING"
                if should_stop and should_stop():
                    return "PROCESSING"
                delay = self.retry.delay(attempt)
                logger.info(
                    "Status check for %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    task_id,
                    attempt + 1,
                    attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue

            state = classify_status(raw)
            logger.debug("Task %s raw status %r -> %s", task_id, raw, state)
            return state
        return "PROCESSING"

    async def wait(self, task_id: str, *, should_stop: Callable[[], bool] | None = None) -> TaskState:
        """
        Poll until a terminal state. Raises ``TaskCancelledError`` when
        ``should_stop`` turns true and ``PollTimeoutError`` when the attempt
        budget is used up.
        """
        stopped = should_stop or (lambda: False)
        for attempt in range(self.max_attempts):
            if stopped():
                raise TaskCancelledError(f"Task {task_id} was cancelled")

            state = await self.check(task_id, should_stop=stopped)
            if state in ("SUCCESS", "FAILED"):
                logger.info("Task %s finished with %s after %d check(s)", task_id, state, attempt + 1)
                return state

            if stopped():
                raise TaskCancelledError(f"Task {task_id} was cancelled")
            await self._sleep(self.interval)

        raise PollTimeoutError(task_id, self.max_attempts)
