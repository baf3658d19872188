"""Unpacking of exported bundles into named in-memory files."""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
import zipfile
from pathlib import PurePosixPath
from typing import Iterable, List, Optional

import requests

from .config import DEFAULT_FETCH_TIMEOUT, DEFAULT_FILE_PREFIX
from .errors import ArchiveDecodeError, FetchError
from .images import detect_mime_type, fetch_blob
from .models import Blob, ExtractedFile
from .utils import now_millis

logger = logging.getLogger("listings_composer")

DEFAULT_EXTENSION = "jpg"
DEFAULT_MIME_TYPE = "image/jpeg"


def entry_extension(entry_name: str) -> str:
    """Extension of an archive entry, ``jpg`` when it has none."""
    suffix = PurePosixPath(entry_name).suffix
    return suffix[1:].lower() if len(suffix) > 1 else DEFAULT_EXTENSION


def entry_mime_type(entry_name: str, data: bytes) -> str:
    """MIME type reported for an archive entry.

    Zip entries carry no type of their own, so the payload signature is
    sniffed first (``filetype``), then the entry name (``mimetypes``), and
    ``image/jpeg`` is used when neither recognises the entry.
    """
    mime_type = detect_mime_type(data) or mimetypes.guess_type(entry_name)[0]
    return mime_type or DEFAULT_MIME_TYPE


def _read_entry(data: bytes, entry_name: str) -> bytes:
    # Each worker opens its own reader so decodes do not share a file position.
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.read(entry_name)


async def extract_archive(
    bundle: Blob,
    prefix: str = DEFAULT_FILE_PREFIX,
    timestamp: Optional[int] = None,
) -> List[ExtractedFile]:
    """Decode every file entry of a zip bundle; all-or-nothing."""
    try:
        with zipfile.ZipFile(io.BytesIO(bundle.data)) as archive:
            entries = [info.filename for info in archive.infolist() if not info.is_dir()]
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
        logger.error("Bundle is not a readable archive: %s", exc)
        raise ArchiveDecodeError(f"Bundle is not a readable archive: {exc}") from exc

    if timestamp is None:
        timestamp = now_millis()
    files: List[ExtractedFile] = []

    async def _extract(entry_name: str) -> None:
        content = await asyncio.to_thread(_read_entry, bundle.data, entry_name)
        files.append(
            ExtractedFile(
                name=f"{prefix}_{timestamp}_{len(files)}.{entry_extension(entry_name)}",
                mime_type=entry_mime_type(entry_name, content),
                content=content,
                size=len(content),
            )
        )

    outcomes = await asyncio.gather(
        *(_extract(entry_name) for entry_name in entries),
        return_exceptions=True,
    )
    failures = [
        (entry_name, outcome)
        for entry_name, outcome in zip(entries, outcomes)
        if isinstance(outcome, BaseException)
    ]
    if failures:
        for entry_name, exc in failures:
            logger.error("Failed to decode archive entry %s: %s", entry_name, exc)
        raise ArchiveDecodeError(
            f"{len(failures)} of {len(entries)} archive entries failed to decode"
        ) from failures[0][1]

    logger.info("Extracted %d file(s) from bundle", len(files))
    return files


async def extract_bundles(
    urls: Iterable[str],
    session: Optional[requests.Session] = None,
    prefix: str = DEFAULT_FILE_PREFIX,
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> List[ExtractedFile]:
    """Fetch each bundle URL in order and extract its files."""
    files: List[ExtractedFile] = []
    last_timestamp = 0
    for url in urls:
        try:
            bundle = await fetch_blob(url, session=session, timeout=fetch_timeout)
        except FetchError as exc:
            logger.error("Failed to download bundle %s: %s", url, exc)
            raise ArchiveDecodeError(f"Failed to download bundle {url}") from exc
        # Distinct timestamps keep names unique across bundles of one export.
        last_timestamp = max(now_millis(), last_timestamp + 1)
        files.extend(await extract_archive(bundle, prefix=prefix, timestamp=last_timestamp))
    return files
