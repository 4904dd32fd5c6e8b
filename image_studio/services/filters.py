"""Local pixel filters (no RunningHub round trip)."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from image_studio.services.errors import ValidationError


def contrast_factor(contrast: float) -> float:
    """
    0.5 leaves the image unchanged and 1.0 roughly doubles contrast. Near 0.0
    the factor turns slightly negative, so values collapse into 128 +/- 2
    with their order inverted.
    """
    return (259 * (contrast * 2 - 1) + 255) / 255


def contrast_table(contrast: float) -> list[int]:
    factor = contrast_factor(contrast)
    return [min(255, max(0, round(factor * (v - 128) + 128))) for v in range(256)]


def _open(raw: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Image data could not be decoded") from exc
    return img


def black_and_white(raw: bytes, contrast: float = 0.5) -> bytes:
    """
    Grayscale with adjustable contrast, returned as PNG bytes.

    Luminance uses the ITU-R 601 weights (0.299, 0.587, 0.114). Alpha is kept.
    """
    contrast = max(0.0, min(1.0, float(contrast)))
    img = _open(raw)

    alpha = None
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
        alpha = img.getchannel("A")

    gray = img.convert("RGB").convert("L").point(contrast_table(contrast))

    if alpha is not None:
        out = Image.merge("RGBA", (gray, gray, gray, alpha))
    else:
        out = Image.merge("RGB", (gray, gray, gray))

    buf = io.BytesIO()
    out.save(buf, format="PNG")
    return buf.getvalue()
