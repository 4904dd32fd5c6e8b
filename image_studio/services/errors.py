"""Error taxonomy for the remote task pipeline."""

from __future__ import annotations


class StudioError(Exception):
    """Base class. ``code`` is the provider envelope code when one was seen."""

    status_code = 500
    reason = "error"

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(StudioError):
    """Bad or missing input, raised before any network call."""
    status_code = 400
    reason = "validation_error"


class UploadError(StudioError):
    status_code = 502
    reason = "upload_failed"


class CreateTaskError(StudioError):
    status_code = 502
    reason = "create_failed"


class QueueSaturatedError(CreateTaskError):
    """The provider has no free execution slot. Retry later."""
    status_code = 429
    reason = "TASK_QUEUE_MAXED"


class StatusCheckError(StudioError):
    status_code = 502
    reason = "status_failed"


class StatusRejectedError(StatusCheckError):
    """The provider answered the status call with an error envelope. Not retried."""
    reason = "status_rejected"


class OutputsError(StudioError):
    status_code = 502
    reason = "outputs_failed"


class CancelError(StudioError):
    status_code = 502
    reason = "cancel_failed"


class DownloadError(StudioError):
    status_code = 502
    reason = "download_failed"


class TaskTimeoutError(StudioError, TimeoutError):
    status_code = 504
    reason = "timeout"


class RequestTimeoutError(TaskTimeoutError):
    """A single provider call exceeded the per-call timeout."""


class PollTimeoutError(TaskTimeoutError):
    """The poll loop used its whole attempt budget without a terminal state."""

    def __init__(self, task_id: str, attempts: int) -> None:
        super().__init__(f"Task {task_id} did not finish after {attempts} status checks")
        self.task_id = task_id
        self.attempts = attempts


class TaskFailedError(StudioError):
    status_code = 502
    reason = "task_failed"


class TaskCancelledError(StudioError):
    status_code = 409
    reason = "task_cancelled"


class TaskAlreadyActiveError(StudioError):
    status_code = 409
    reason = "task_active"

    def __init__(self, task_id: str | None = None) -> None:
        label = f"Task {task_id}" if task_id else "Another task"
        super().__init__(f"{label} is still running. Cancel it before starting a new one.")
        self.task_id = task_id
