"""Fetch a processed output image so the browser can save it as a file."""

from __future__ import annotations

import logging
import time
from urllib.parse import urlparse

import requests

from image_studio.services.errors import DownloadError, RequestTimeoutError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks


def attachment_filename() -> str:
    return f"processed-image-{int(time.time() * 1000)}.png"


def fetch_output(
    url: str,
    *,
    timeout: float = 180.0,
    max_bytes: int | None = None,
    session: requests.Session | None = None,
) -> bytes:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("A valid http(s) image URL is required")

    http = session or requests
    logger.info("Downloading output image from %s", parsed.netloc)
    try:
        resp = http.get(url, stream=True, timeout=timeout)
    except requests.Timeout as exc:
        raise RequestTimeoutError(f"Download timed out after {timeout:g}s") from exc
    except requests.RequestException as exc:
        raise DownloadError(f"Failed to fetch image: {exc}") from exc

    try:
        if resp.status_code >= 400:
            raise DownloadError(f"Failed to fetch image: HTTP {resp.status_code}")

        chunks = []
        total = 0
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                total += len(chunk)
                if max_bytes is not None and total > max_bytes:
                    raise DownloadError(f"Image exceeds {max_bytes} bytes")
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise DownloadError(f"Image download interrupted: {exc}") from exc
    finally:
        resp.close()

    if total == 0:
        raise DownloadError("Received empty image data")
    return b"".join(chunks)
