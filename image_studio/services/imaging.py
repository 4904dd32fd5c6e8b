"""Image payload helpers: data URLs, fingerprints and sniffing."""

from __future__ import annotations

import base64
import binascii
import io
import re

import blake3
from PIL import Image, UnidentifiedImageError

from image_studio.services.errors import ValidationError

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


def decode_data_url(data: str | None, *, max_bytes: int | None = None) -> bytes:
    """Decode a ``data:image/...;base64,`` URL (or bare base64) to bytes."""
    if not data or not data.strip():
        raise ValidationError("Image data is required")
    payload = _DATA_URL_PREFIX.sub("", data.strip(), count=1)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image data is not valid base64") from exc
    if not raw:
        raise ValidationError("Image data is empty")
    if max_bytes is not None and len(raw) > max_bytes:
        raise ValidationError(f"Image is too large ({len(raw)} bytes, limit {max_bytes})")
    return raw


def encode_data_url(raw: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64," + base64.b64encode(raw).decode("ascii")


def fingerprint(raw: bytes) -> str:
    return blake3.blake3(raw).hexdigest()


def looks_like_image(raw: bytes) -> bool:
    """True when Pillow can identify ``raw`` as an image."""
    if not raw:
        return False
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False
    return True
