"""Image fetching and data URI encoding utilities."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests
from filetype import guess

from .config import DEFAULT_FETCH_TIMEOUT
from .errors import EncodingError, FetchError
from .models import Blob

logger = logging.getLogger("listings_composer")

FALLBACK_MIME_TYPE = "application/octet-stream"


def detect_mime_type(data: bytes) -> Optional[str]:
    """Detect any MIME type from the payload signature."""
    kind = guess(data)
    return kind.mime if kind else None


def _read_local(url: str) -> Blob:
    parsed = urlparse(url)
    path = Path(url2pathname(unquote(parsed.path)))
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FetchError(url, str(exc)) from exc
    return Blob(data=data, mime_type=detect_mime_type(data) or "")


def _get(session: requests.Session, url: str, timeout: float) -> Blob:
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(url, str(exc)) from exc

    content_type = resp.headers.get("Content-Type", "")
    mime_type = content_type.split(";")[0].strip().lower()
    data = resp.content
    if not mime_type:
        mime_type = detect_mime_type(data) or ""
    return Blob(data=data, mime_type=mime_type)


async def fetch_blob(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> Blob:
    """Retrieve a URL once and return its payload as a blob."""
    scheme = urlparse(url).scheme.lower()
    if scheme == "file":
        return await asyncio.to_thread(_read_local, url)
    if scheme not in ("http", "https"):
        raise FetchError(url, f"unsupported URL scheme {scheme!r}")

    owns_session = session is None
    session = session or requests.Session()
    try:
        logger.debug("Fetching %s", url)
        blob = await asyncio.to_thread(_get, session, url, timeout)
    finally:
        if owns_session:
            session.close()
    logger.debug("Fetched %s (%d bytes, %s)", url, blob.size, blob.mime_type or "unknown type")
    return blob


class BlobReader:
    """Completion-driven reader that turns a blob into a data URI."""

    def __init__(self, blob: Blob) -> None:
        self.blob = blob

    def read_as_data_url(
        self,
        on_load: Callable[[str], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        """Schedule the read; exactly one of the callbacks fires later."""
        loop = asyncio.get_running_loop()
        loop.call_soon(self._read, on_load, on_error)

    def _read(
        self,
        on_load: Callable[[str], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        try:
            data = self.blob.read()
            mime_type = self.blob.mime_type or detect_mime_type(data) or FALLBACK_MIME_TYPE
            payload = base64.b64encode(data).decode("ascii")
        except Exception as exc:  # noqa: BLE001 - reported through on_error
            on_error(exc)
            return
        on_load(f"data:{mime_type};base64,{payload}")


async def encode_blob(blob: Blob) -> str:
    """Encode a blob as a data URI, bridging the reader callbacks to a future."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def _resolve(value: str) -> None:
        if not future.done():
            future.set_result(value)

    def _reject(exc: BaseException) -> None:
        if not future.done():
            future.set_exception(exc)

    BlobReader(blob).read_as_data_url(_resolve, _reject)
    try:
        return await future
    except EncodingError:
        raise
    except Exception as exc:
        raise EncodingError(f"Failed to read blob: {exc}") from exc


def decode_data_uri(uri: str) -> Blob:
    """Recover the blob embedded in a base64 data URI."""
    if not uri.startswith("data:") or "," not in uri:
        raise EncodingError("Not a data URI")
    header, payload = uri[len("data:"):].split(",", 1)
    params = header.split(";")
    if "base64" not in params[1:]:
        raise EncodingError("Only base64 data URIs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncodingError(f"Invalid base64 payload: {exc}") from exc
    return Blob(data=data, mime_type=params[0])
