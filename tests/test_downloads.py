# tests/test_downloads.py

from __future__ import annotations

import re

import pytest
import requests

from image_studio.services.downloads import attachment_filename, fetch_output
from image_studio.services.errors import DownloadError, RequestTimeoutError, ValidationError

from .fakes import FakeResponse, FakeSession

URL = "https://cdn.example.com/out1.png"


def test_fetch_returns_body_and_streams(session: FakeSession) -> None:
    session.queue("GET", FakeResponse(content=b"\x89PNG" + b"x" * 10))

    body = fetch_output(URL, timeout=3.0, session=session)

    assert body == b"\x89PNG" + b"x" * 10
    call = session.calls[0]
    assert call.url == URL
    assert call.kwargs == {"stream": True, "timeout": 3.0}


@pytest.mark.parametrize("url", ["", "ftp://cdn.example.com/a.png", "/relative/path.png", "https://"])
def test_fetch_rejects_non_http_urls(session: FakeSession, url: str) -> None:
    with pytest.raises(ValidationError):
        fetch_output(url, session=session)
    assert session.calls == []


def test_fetch_maps_http_errors(session: FakeSession) -> None:
    response = FakeResponse(status_code=404, content=b"missing")
    session.queue("GET", response)

    with pytest.raises(DownloadError, match="HTTP 404"):
        fetch_output(URL, session=session)
    assert response.closed


def test_fetch_rejects_empty_body(session: FakeSession) -> None:
    session.queue("GET", FakeResponse(content=b""))

    with pytest.raises(DownloadError, match="empty"):
        fetch_output(URL, session=session)


def test_fetch_enforces_size_limit(session: FakeSession) -> None:
    session.queue("GET", FakeResponse(content=b"y" * 64))

    with pytest.raises(DownloadError):
        fetch_output(URL, max_bytes=16, session=session)


def test_fetch_timeout_and_connection_errors(session: FakeSession) -> None:
    session.queue("GET", requests.Timeout("slow"), requests.ConnectionError("down"))

    with pytest.raises(RequestTimeoutError):
        fetch_output(URL, session=session)
    with pytest.raises(DownloadError):
        fetch_output(URL, session=session)


def test_attachment_filename_shape() -> None:
    assert re.fullmatch(r"processed-image-\d+\.png", attachment_filename())
