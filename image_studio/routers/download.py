"""Download proxy for processed images."""

from fastapi import APIRouter, Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from image_studio.config import get_settings
from image_studio.services.downloads import attachment_filename, fetch_output

router = APIRouter()


class DownloadRequest(BaseModel):
    imageUrl: str


@router.post("/download")
async def download_image(req: DownloadRequest):
    """Fetch an output image and hand it back as a file attachment."""
    settings = get_settings()
    content = await run_in_threadpool(
        fetch_output,
        req.imageUrl,
        timeout=settings.request_timeout_seconds,
        max_bytes=settings.max_image_bytes,
    )
    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{attachment_filename()}"',
            "Cache-Control": "no-cache",
            "X-Content-Type-Options": "nosniff",
        },
    )
