"""Local image filters."""

from fastapi import APIRouter
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from image_studio.config import get_settings
from image_studio.services.filters import black_and_white
from image_studio.services.imaging import decode_data_url, encode_data_url

router = APIRouter()


class BlackAndWhiteRequest(BaseModel):
    imageData: str
    contrast: float = Field(default=0.5, ge=0.0, le=1.0)


@router.post("/black-and-white")
async def black_and_white_filter(req: BlackAndWhiteRequest):
    """Grayscale with adjustable contrast; returns a PNG data URL."""
    raw = decode_data_url(req.imageData, max_bytes=get_settings().max_image_bytes)
    png = await run_in_threadpool(black_and_white, raw, req.contrast)
    return {"image": encode_data_url(png, "image/png")}
