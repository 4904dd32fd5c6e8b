"""Drives one image job through upload -> create -> poll -> outputs (or cancel)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from image_studio.config import Settings, get_settings
from image_studio.schemas.remote_task import RemoteTask, UploadHandle
from image_studio.services.errors import (
    CancelError,
    OutputsError,
    QueueSaturatedError,
    StudioError,
    TaskAlreadyActiveError,
    TaskCancelledError,
    TaskFailedError,
    TaskTimeoutError,
    ValidationError,
)
from image_studio.services.imaging import fingerprint
from image_studio.services.poller import StatusPoller
from image_studio.services.runninghub import RunningHubClient
from image_studio.services.workflows import resolve_workflow

logger = logging.getLogger(__name__)

Notify = Callable[[str, dict], Awaitable[None]]


@dataclass
class _Run:
    mode: str
    cancelled: bool = False
    task: Optional[RemoteTask] = None


class TaskLifecycleController:
    """
    Owns the session state: the source image, its cached upload handle and
    the single active run.

    At most one run is active. ``run``/``start`` while one is active raise
    ``TaskAlreadyActiveError``; the slot is claimed before the first await so
    two callers can never both get it.
    """

    def __init__(
        self,
        client: RunningHubClient,
        poller: StatusPoller,
        *,
        notify: Notify | None = None,
    ) -> None:
        self.client = client
        self.poller = poller
        self._notify = notify

        self._source: Optional[bytes] = None
        self._source_fingerprint: Optional[str] = None
        self._upload: Optional[UploadHandle] = None
        # Bumped whenever the source is replaced or cleared.
        self._source_generation = 0

        self._run: Optional[_Run] = None
        self._last_task: Optional[RemoteTask] = None
        self._background: Optional[asyncio.Task] = None

    # --- State -------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._run is not None

    @property
    def active_task(self) -> Optional[RemoteTask]:
        return self._run.task if self._run else None

    @property
    def last_task(self) -> Optional[RemoteTask]:
        return self._last_task

    @property
    def upload_handle(self) -> Optional[UploadHandle]:
        return self._upload

    @property
    def source_image(self) -> Optional[bytes]:
        return self._source

    def set_source(self, image_bytes: bytes) -> bool:
        """Replace the source image. Returns True when the cached upload was dropped."""
        fp = fingerprint(image_bytes)
        self._source = image_bytes
        if fp == self._source_fingerprint:
            return False
        self._source_fingerprint = fp
        self._source_generation += 1
        invalidated = self._upload is not None
        self._upload = None
        if invalidated:
            logger.info("Source image replaced, upload handle invalidated")
        return invalidated

    async def clear(self) -> None:
        """Cancel any active run and forget the source image and its handle."""
        self._source = None
        self._source_fingerprint = None
        self._source_generation += 1
        self._upload = None
        self._last_task = None
        await self.cancel()

    def get_status(self) -> dict:
        """Get current session status for UI."""
        task = self.active_task or self._last_task
        return {
            "busy": self.is_busy,
            "mode": self._run.mode if self._run else None,
            "has_source": self._source is not None,
            "upload": self._upload.file_name if self._upload else None,
            "task": task.model_dump(mode="json") if task else None,
        }

    # --- Upload cache ------------------------------------------------------

    async def ensure_upload(self, image_bytes: bytes) -> UploadHandle:
        """Upload ``image_bytes`` unless the cached handle already covers them."""
        fp = fingerprint(image_bytes)
        if self._upload is not None and self._upload.fingerprint == fp:
            logger.info("Reusing uploaded image %s", self._upload.file_name)
            return self._upload

        generation = self._source_generation
        handle = await asyncio.to_thread(self.client.upload, image_bytes)

        # A different source set (or a clear) during the upload wins; the
        # handle is only returned to the caller.
        if self._source_generation != generation and self._source_fingerprint != fp:
            logger.info("Source changed during upload, not caching %s", handle.file_name)
            return handle
        if self._source_fingerprint is None:
            self._source = image_bytes
            self._source_fingerprint = fp
        if self._source_fingerprint == fp:
            self._upload = handle
        return handle

    # --- Runs --------------------------------------------------------------

    def _reserve(self, source: Optional[bytes], mode: str, aux: Optional[bytes]) -> _Run:
        spec = resolve_workflow(self.client.workflows, mode)
        if not source:
            raise ValidationError("Source image is required")
        if spec.requires_aux and not aux:
            raise ValidationError(f"Mode '{mode}' requires a second image")
        if self._run is not None:
            active = self._run.task
            raise TaskAlreadyActiveError(active.task_id if active else None)
        run = _Run(mode=mode)
        self._run = run
        return run

    async def run(self, source: Optional[bytes], mode: str, aux: Optional[bytes] = None) -> list[str]:
        """Run one job to completion and return its output URLs."""
        run = self._reserve(source, mode, aux)
        return await self._execute(run, source, aux)

    def start(self, source: Optional[bytes], mode: str, aux: Optional[bytes] = None) -> asyncio.Task:
        """Start a job in the background; results are reported through ``notify``."""
        run = self._reserve(source, mode, aux)
        task = asyncio.create_task(self._execute_and_notify(run, source, aux))
        self._background = task
        return task

    async def _execute(self, run: _Run, source: bytes, aux: Optional[bytes]) -> list[str]:
        try:
            handle = await self.ensure_upload(source)

            aux_ref = None
            if aux:
                if fingerprint(aux) == handle.fingerprint:
                    aux_ref = handle.file_name
                else:
                    aux_handle = await asyncio.to_thread(self.client.upload, aux)
                    aux_ref = aux_handle.file_name

            if run.cancelled:
                raise TaskCancelledError("Cancelled before the task was created")

            task_id = await asyncio.to_thread(self.client.create_task, handle.file_name, run.mode, aux_ref)
            task = RemoteTask(task_id=task_id, mode=run.mode, source_ref=handle.file_name, aux_ref=aux_ref)
            run.task = task
            if self._run is run or self._run is None:
                self._last_task = task

            if run.cancelled:
                # cancel() ran while create was in flight; the remote task exists now.
                task.advance("CANCELLED")
                await self._cancel_remote(task_id)
                raise TaskCancelledError(f"Task {task_id} was cancelled")

            task.advance("PROCESSING")
            state = await self.poller.wait(task_id, should_stop=lambda: run.cancelled)
            if run.cancelled:
                raise TaskCancelledError(f"Task {task_id} was cancelled")
            if state == "FAILED":
                raise TaskFailedError("Image processing failed")

            outputs = await asyncio.to_thread(self.client.get_outputs, task_id)
            if run.cancelled:
                raise TaskCancelledError(f"Task {task_id} was cancelled")
            task.advance("SUCCESS", outputs=outputs)
            return list(task.outputs)

        except TaskCancelledError:
            if run.task:
                run.task.advance("CANCELLED")
            raise
        except Exception as exc:
            if run.task:
                run.task.advance("FAILED", error=str(exc))
            raise
        finally:
            if self._run is run:
                self._run = None

    async def _execute_and_notify(self, run: _Run, source: bytes, aux: Optional[bytes]) -> None:
        await self._emit("task_started", {"mode": run.mode})
        try:
            outputs = await self._execute(run, source, aux)
        except TaskCancelledError:
            logger.info("Run for mode %s stopped by cancellation", run.mode)
        except QueueSaturatedError as exc:
            await self._emit("queue_saturated", {
                "mode": run.mode,
                "message": "System busy, please try again in a moment.",
                "error": exc.message,
            })
        except StudioError as exc:
            logger.warning("Run for mode %s failed: %s", run.mode, exc)
            await self._emit("task_failed", {
                "mode": run.mode,
                "task_id": run.task.task_id if run.task else None,
                "reason": exc.reason,
                "error": exc.message,
            })
        except Exception as exc:
            logger.exception("Run for mode %s crashed", run.mode)
            await self._emit("task_failed", {
                "mode": run.mode,
                "task_id": run.task.task_id if run.task else None,
                "reason": "error",
                "error": str(exc),
            })
        else:
            await self._emit("task_complete", {
                "mode": run.mode,
                "task_id": run.task.task_id if run.task else None,
                "outputs": outputs,
            })

    # --- Cancel / outputs ----------------------------------------------------

    async def cancel(self) -> dict:
        """
        Cancel the active run. Local state is cleared at once; the remote
        cancel is best effort. No-op when nothing is running.
        """
        run = self._run
        if run is None:
            return {"cancelled": False, "task_id": None, "remote_acknowledged": None}

        run.cancelled = True
        self._run = None

        task = run.task
        acknowledged = None
        if task is not None:
            task.advance("CANCELLED")
            acknowledged = await self._cancel_remote(task.task_id)

        await self._emit("task_cancelled", {"mode": run.mode, "task_id": task.task_id if task else None})
        return {
            "cancelled": True,
            "task_id": task.task_id if task else None,
            "remote_acknowledged": acknowledged,
        }

    async def _cancel_remote(self, task_id: str) -> bool:
        try:
            return await asyncio.to_thread(self.client.cancel_task, task_id)
        except (CancelError, TaskTimeoutError) as exc:
            logger.warning("Remote cancel of %s failed, local state already cleared: %s", task_id, exc)
            return False

    def outputs_for(self, task_id: str) -> list[str]:
        """Outputs of a finished task known to this session."""
        task = self._last_task
        if task is None or task.task_id != task_id:
            raise OutputsError(f"Unknown task {task_id}")
        if task.state != "SUCCESS":
            raise OutputsError(f"Task {task_id} has not succeeded (state {task.state})")
        return list(task.outputs)

    async def _emit(self, event_type: str, data: dict[str, Any]) -> None:
        if self._notify is None:
            return
        try:
            await self._notify(event_type, data)
        except Exception:
            logger.exception("Failed to deliver %s notification", event_type)

    async def shutdown(self) -> None:
        await self.cancel()
        if self._background and not self._background.done():
            self._background.cancel()
            try:
                await self._background
            except asyncio.CancelledError:
                pass
        self.client.close()


def build_controller(settings: Settings, *, notify: Notify | None = None) -> TaskLifecycleController:
    """Wire client, poller and controller from settings."""
    client = RunningHubClient(
        base_url=settings.runninghub_base_url,
        api_key=settings.runninghub_api_key,
        workflows=settings.load_workflows(),
        timeout=settings.request_timeout_seconds,
    )
    poller = StatusPoller(
        client,
        interval=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        retry=settings.retry_policy(),
    )
    return TaskLifecycleController(client, poller, notify=notify)


# Global instance
_controller: Optional[TaskLifecycleController] = None


def get_controller() -> TaskLifecycleController:
    global _controller
    if _controller is None:
        from image_studio.websocket import broadcast
        _controller = build_controller(get_settings(), notify=broadcast)
    return _controller


async def shutdown_controller() -> None:
    global _controller
    if _controller is not None:
        await _controller.shutdown()
        _controller = None
