"""Shared fixtures and fakes for the listing pipeline tests."""

import asyncio
import io
import zipfile
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pytest
import requests
from PIL import Image

from listings_composer.models import DocumentContext, ExportResult, ExportStatus, ImageElement


def make_image_bytes(fmt: str = "JPEG", size: Tuple[int, int] = (32, 24), color: str = "red") -> bytes:
    """Encode a small solid-colour image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_response(
    url: str,
    content: bytes = b"",
    status: int = 200,
    content_type: Optional[str] = "image/jpeg",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = content
    response.url = url
    response.reason = "OK" if status < 400 else "Not Found"
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


def make_zip(entries: Dict[str, bytes], directories: Iterable[str] = ()) -> bytes:
    """Build a stored (uncompressed) zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
        for directory in directories:
            archive.writestr(directory, b"")
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


class FakeSession:
    """Stands in for ``requests.Session``; unknown URLs are unreachable."""

    def __init__(self, routes: Optional[Dict[str, requests.Response]] = None, events: Optional[List[str]] = None):
        self.routes = routes or {}
        self.requested: List[str] = []
        self.events = events if events is not None else []
        self.closed = False

    def get(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        self.requested.append(url)
        self.events.append(f"fetch:{url}")
        response = self.routes.get(url)
        if response is None:
            raise requests.ConnectionError(f"Could not resolve host for {url}")
        return response

    def close(self) -> None:
        self.closed = True


_DEFAULT_CONTEXT = object()


class RecordingHost:
    """In-memory host document that records every call."""

    def __init__(
        self,
        context: Any = _DEFAULT_CONTEXT,
        export_result: Union[ExportResult, Mapping[str, Any], Exception, None] = None,
        export_delay: float = 0.0,
        fail_on_title: Optional[str] = None,
        events: Optional[List[str]] = None,
    ):
        self.context = DocumentContext(document_id="doc-1") if context is _DEFAULT_CONTEXT else context
        self.export_result = export_result or ExportResult(status=ExportStatus.COMPLETED, bundle_urls=("https://cdn.test/bundle.zip",))
        self.export_delay = export_delay
        self.fail_on_title = fail_on_title
        self.events = events if events is not None else []
        self.pages: List[Tuple[str, List[ImageElement]]] = []
        self.export_requests: List[Tuple[str, ...]] = []
        self.export_started = asyncio.Event()

    async def insert_page(self, title: str, elements: Sequence[ImageElement]) -> None:
        self.events.append(f"insert:{title}")
        if title == self.fail_on_title:
            raise RuntimeError(f"host rejected page {title}")
        self.pages.append((title, list(elements)))

    async def get_current_context(self) -> Optional[DocumentContext]:
        return self.context

    async def request_export(self, accepted_file_types: Iterable[str]) -> Union[ExportResult, Mapping[str, Any]]:
        self.export_requests.append(tuple(accepted_file_types))
        self.export_started.set()
        if self.export_delay:
            await asyncio.sleep(self.export_delay)
        if isinstance(self.export_result, Exception):
            raise self.export_result
        return self.export_result


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG", color="blue")
