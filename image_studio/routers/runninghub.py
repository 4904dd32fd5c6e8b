"""API Router for the RunningHub task operations."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from image_studio.config import get_settings
from image_studio.dependencies import controller_dependency, require_api_key
from image_studio.services.imaging import decode_data_url
from image_studio.services.lifecycle import TaskLifecycleController

router = APIRouter(dependencies=[Depends(require_api_key)])

# --- Schemas ---

class UploadRequest(BaseModel):
    imageData: str

class UploadResponse(BaseModel):
    imageFileName: str
    reused: bool

class CreateRequest(BaseModel):
    imageFileName: str
    mode: str
    targetImageFileName: Optional[str] = None

class CreateResponse(BaseModel):
    taskId: str
    status: str

class TaskRequest(BaseModel):
    taskId: str

class StatusResponse(BaseModel):
    taskId: str
    status: str

class OutputsResponse(BaseModel):
    taskId: str
    outputUrls: list[str]

class CancelResponse(BaseModel):
    success: bool
    remoteAcknowledged: Optional[bool] = None


# --- Endpoints ---

@router.post("/upload", response_model=UploadResponse)
async def upload_image(req: UploadRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Upload an image once; repeated uploads of the same bytes reuse the handle."""
    raw = decode_data_url(req.imageData, max_bytes=get_settings().max_image_bytes)
    previous = controller.upload_handle
    handle = await controller.ensure_upload(raw)
    return {"imageFileName": handle.file_name, "reused": previous is handle}


@router.post("/create", response_model=CreateResponse)
async def create_task(req: CreateRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Create a workflow task for an uploaded image."""
    task_id = await asyncio.to_thread(
        controller.client.create_task,
        req.imageFileName,
        req.mode,
        req.targetImageFileName,
    )
    return {"taskId": task_id, "status": "CREATED"}


@router.post("/status", response_model=StatusResponse)
async def check_status(req: TaskRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Classified task status. Transient provider errors read as PROCESSING."""
    state = await controller.poller.check(req.taskId)
    return {"taskId": req.taskId, "status": state}


@router.post("/outputs", response_model=OutputsResponse)
async def get_outputs(req: TaskRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    urls = await asyncio.to_thread(controller.client.get_outputs, req.taskId)
    return {"taskId": req.taskId, "outputUrls": urls}


@router.post("/cancel", response_model=CancelResponse)
async def cancel_task(req: TaskRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Cancel a task. The session's own active task is also cleared locally."""
    active = controller.active_task
    if active is not None and active.task_id == req.taskId:
        result = await controller.cancel()
        return {"success": True, "remoteAcknowledged": result["remote_acknowledged"]}

    acknowledged = await asyncio.to_thread(controller.client.cancel_task, req.taskId)
    return {"success": True, "remoteAcknowledged": acknowledged}
