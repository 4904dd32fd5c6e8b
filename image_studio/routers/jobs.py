"""Session-level job endpoints: one source image, one active job."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from image_studio.config import get_settings
from image_studio.dependencies import controller_dependency, require_api_key
from image_studio.services.errors import ValidationError
from image_studio.services.imaging import decode_data_url
from image_studio.services.lifecycle import TaskLifecycleController
from image_studio.services.workflows import LOCAL_MODES

router = APIRouter()


class SourceRequest(BaseModel):
    imageData: str

class RunRequest(BaseModel):
    mode: str
    targetImageData: Optional[str] = None

class ModeInfo(BaseModel):
    mode: str
    remote: bool
    requires_aux: bool
    workflow_id: Optional[str] = None


@router.get("/modes", response_model=list[ModeInfo])
async def list_modes(controller: TaskLifecycleController = Depends(controller_dependency)):
    """All selectable transformations."""
    modes = [ModeInfo(mode=m, remote=False, requires_aux=False) for m in LOCAL_MODES]
    for mode, spec in controller.client.workflows.items():
        modes.append(ModeInfo(
            mode=mode,
            remote=True,
            requires_aux=spec.requires_aux,
            workflow_id=spec.workflow_id,
        ))
    return modes


@router.post("/source")
async def set_source(req: SourceRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Replace the session's source image."""
    raw = decode_data_url(req.imageData, max_bytes=get_settings().max_image_bytes)
    invalidated = controller.set_source(raw)
    return {"status": "ok", "bytes": len(raw), "upload_invalidated": invalidated}


@router.post("/run", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_api_key)])
async def run_job(req: RunRequest, controller: TaskLifecycleController = Depends(controller_dependency)):
    """Start a remote job; progress and results arrive on /ws."""
    source = controller.source_image
    if source is None:
        raise ValidationError("Upload a source image first")
    aux = None
    if req.targetImageData:
        aux = decode_data_url(req.targetImageData, max_bytes=get_settings().max_image_bytes)
    controller.start(source, req.mode, aux)
    return {"status": "started", "mode": req.mode}


@router.get("/current")
async def current_job(controller: TaskLifecycleController = Depends(controller_dependency)):
    return controller.get_status()


@router.get("/tasks/{task_id}/outputs")
async def job_outputs(task_id: str, controller: TaskLifecycleController = Depends(controller_dependency)):
    return {"taskId": task_id, "outputUrls": controller.outputs_for(task_id)}


@router.post("/cancel")
async def cancel_job(controller: TaskLifecycleController = Depends(controller_dependency)):
    """Cancel the active job. Always succeeds locally."""
    return await controller.cancel()


@router.post("/clear")
async def clear_session(controller: TaskLifecycleController = Depends(controller_dependency)):
    """Forget the source image, its upload handle and any job."""
    await controller.clear()
    return {"status": "cleared"}
