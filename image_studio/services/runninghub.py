"""RunningHub workflow API client.

RunningHub wraps every response in ``{"code", "msg", "data"}`` where
``code == 0`` means success. That convention stays inside this module:
callers get plain values back or one of the errors from
``image_studio.services.errors``.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from image_studio.schemas.remote_task import UploadHandle, WorkflowSpec
from image_studio.services.errors import (
    CancelError,
    CreateTaskError,
    OutputsError,
    QueueSaturatedError,
    RequestTimeoutError,
    StatusCheckError,
    StatusRejectedError,
    StudioError,
    UploadError,
    ValidationError,
)
from image_studio.services.imaging import fingerprint, looks_like_image
from image_studio.services.workflows import resolve_workflow

logger = logging.getLogger(__name__)

QUEUE_MAXED_MARKER = "task queue maxed"

UPLOAD_FILE_NAME = "image.jpg"
UPLOAD_CONTENT_TYPE = "image/jpeg"


def is_queue_saturated(message: str | None) -> bool:
    return bool(message) and QUEUE_MAXED_MARKER in message.lower()


class RunningHubClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        workflows: dict[str, WorkflowSpec],
        timeout: float = 180.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.workflows = dict(workflows)
        self.timeout = timeout
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _url(self, operation: str) -> str:
        return f"{self.base_url}/task/openapi/{operation}"

    def _post(
        self,
        operation: str,
        error_cls: type[StudioError],
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        strict_status: bool = False,
    ) -> dict[str, Any]:
        """POST to the provider and return the decoded envelope."""
        headers = {"Accept": "application/json"}
        try:
            resp = self._session.post(
                self._url(operation),
                json=json,
                data=data,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise RequestTimeoutError(
                f"RunningHub {operation} timed out after {self.timeout:g}s"
            ) from exc
        except requests.RequestException as exc:
            raise error_cls(f"RunningHub {operation} request failed: {exc}") from exc

        try:
            envelope = resp.json()
        except ValueError:
            envelope = None

        if not isinstance(envelope, dict):
            if resp.status_code >= 400:
                raise error_cls(f"RunningHub {operation} returned HTTP {resp.status_code}")
            raise error_cls(f"RunningHub {operation} returned a non-JSON response")

        # An error status with a success envelope is still an error. With
        # strict_status any error status is, whatever the envelope says.
        if resp.status_code >= 400 and (strict_status or envelope.get("code") == 0):
            raise error_cls(f"RunningHub {operation} returned HTTP {resp.status_code}")
        return envelope

    @staticmethod
    def _unwrap(envelope: dict[str, Any], error_cls: type[StudioError], fallback: str) -> Any:
        code = envelope.get("code")
        if code != 0:
            raise error_cls(envelope.get("msg") or fallback, code=code)
        return envelope.get("data")

    def _require_task_id(self, task_id: str | None) -> str:
        if not task_id or not str(task_id).strip():
            raise ValidationError("Task id is required")
        return str(task_id)

    def upload(self, image_bytes: bytes) -> UploadHandle:
        """Upload image bytes once; the returned handle names the file remotely."""
        if not image_bytes:
            raise UploadError("Image payload is empty")
        if not looks_like_image(image_bytes):
            raise UploadError("Image payload is not a readable image")

        logger.info("RunningHub: uploading image (%d bytes)", len(image_bytes))
        envelope = self._post(
            "upload",
            UploadError,
            data={"apiKey": self.api_key, "fileType": "image"},
            files={"file": (UPLOAD_FILE_NAME, image_bytes, UPLOAD_CONTENT_TYPE)},
        )
        data = self._unwrap(envelope, UploadError, "Failed to upload image")
        file_name = data.get("fileName") if isinstance(data, dict) else None
        if not file_name:
            raise UploadError("Upload response did not include a file name")

        logger.info("RunningHub: upload ok, fileName=%s", file_name)
        return UploadHandle(file_name=file_name, fingerprint=fingerprint(image_bytes))

    def create_task(self, source_ref: str, mode: str, aux_ref: str | None = None) -> str:
        """Start the workflow configured for ``mode`` and return its task id."""
        spec = resolve_workflow(self.workflows, mode)
        if not source_ref:
            raise ValidationError("Image file name is required")
        if spec.requires_aux and not aux_ref:
            raise ValidationError(f"Mode '{mode}' requires a second image")

        body = {
            "workflowId": spec.workflow_id,
            "apiKey": self.api_key,
            "nodeInfoList": spec.node_info_list(source_ref, aux_ref if spec.requires_aux else None),
        }
        logger.info("RunningHub: creating task mode=%s workflow=%s", mode, spec.workflow_id)
        envelope = self._post("create", CreateTaskError, json=body)

        if envelope.get("code") != 0 and is_queue_saturated(envelope.get("msg")):
            logger.warning("RunningHub: task queue is full (mode=%s)", mode)
            raise QueueSaturatedError(envelope.get("msg") or "Task queue is full", code=envelope.get("code"))

        data = self._unwrap(envelope, CreateTaskError, "Failed to create task")
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            raise CreateTaskError("Create response did not include a task id")

        logger.info(
            "RunningHub: task created taskId=%s status=%s",
            task_id,
            data.get("taskStatus"),
        )
        return str(task_id)

    def check_status(self, task_id: str) -> str:
        """
        One status call, no retries. Returns the provider's raw status string.

        Transport failures raise ``StatusCheckError``; an error envelope
        raises ``StatusRejectedError``.
        """
        task_id = self._require_task_id(task_id)
        envelope = self._post(
            "status",
            StatusCheckError,
            json={"taskId": task_id, "apiKey": self.api_key},
            strict_status=True,
        )
        data = self._unwrap(envelope, StatusRejectedError, "Failed to check status")
        if isinstance(data, dict):
            data = data.get("status")
        return "" if data is None else str(data)

    def get_outputs(self, task_id: str) -> list[str]:
        task_id = self._require_task_id(task_id)
        envelope = self._post("outputs", OutputsError, json={"taskId": task_id, "apiKey": self.api_key})
        data = self._unwrap(envelope, OutputsError, "Failed to get outputs")
        if not isinstance(data, list):
            raise OutputsError("Outputs response is not a list")

        urls = [item.get("fileUrl") for item in data if isinstance(item, dict) and item.get("fileUrl")]
        if not urls:
            raise OutputsError(f"Task {task_id} produced no outputs")
        logger.info("RunningHub: %d output(s) for taskId=%s", len(urls), task_id)
        return urls

    def cancel_task(self, task_id: str) -> bool:
        task_id = self._require_task_id(task_id)
        logger.info("RunningHub: cancelling taskId=%s", task_id)
        envelope = self._post("cancel", CancelError, json={"taskId": task_id, "apiKey": self.api_key})
        self._unwrap(envelope, CancelError, "Failed to cancel task")
        return True
