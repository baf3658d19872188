"""Previews and downloads for extracted files."""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from PIL import Image

from .config import DEFAULT_PREVIEW_MAX_SIDE
from .models import ExtractedFile, PreviewHandle

logger = logging.getLogger("listings_composer")


def save_file(file: ExtractedFile, destination_dir: Path) -> Path:
    """Write an extracted file under its synthetic name."""
    destination_dir.mkdir(parents=True, exist_ok=True)
    destination = destination_dir / file.name
    destination.write_bytes(file.content)
    logger.info("Saved %s (%d bytes)", destination, file.size)
    return destination


def _render_thumbnail(content: bytes, max_side: int) -> Optional[bytes]:
    try:
        with Image.open(io.BytesIO(content)) as raw_image:
            image = raw_image.convert("RGB")
    except (OSError, Image.DecompressionBombError):
        return None
    width, height = image.size
    longest_edge = max(width, height)
    if longest_edge > max_side:
        scale = max_side / float(longest_edge)
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        image = image.resize(new_size, Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class PreviewRegistry:
    """Owns the temporary previews shown for extracted files.

    Every handle returned by :meth:`create` stays on disk until it is revoked
    or the registry is closed.
    """

    def __init__(self, max_side: int = DEFAULT_PREVIEW_MAX_SIDE) -> None:
        self.max_side = max_side
        self._root = Path(tempfile.mkdtemp(prefix="listings-composer-preview-"))
        self._handles: Dict[str, PreviewHandle] = {}

    def __enter__(self) -> "PreviewRegistry":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def active(self) -> List[PreviewHandle]:
        return list(self._handles.values())

    def create(self, file: ExtractedFile) -> PreviewHandle:
        thumbnail = _render_thumbnail(file.content, self.max_side)
        if thumbnail is not None:
            path = self._root / f"{Path(file.name).stem}.png"
            path.write_bytes(thumbnail)
        else:
            path = self._root / file.name
            path.write_bytes(file.content)
        handle = PreviewHandle(uri=path.resolve().as_uri(), path=path)
        self._handles[handle.uri] = handle
        logger.debug("Created preview %s", handle.uri)
        return handle

    def revoke(self, handle: PreviewHandle) -> None:
        if self._handles.pop(handle.uri, None) is None:
            return
        handle.path.unlink(missing_ok=True)
        logger.debug("Revoked preview %s", handle.uri)

    def close(self) -> None:
        for handle in list(self._handles.values()):
            self.revoke(handle)
        shutil.rmtree(self._root, ignore_errors=True)


@dataclass
class MaterializedFile:
    """An extracted file with its preview and a save action."""

    file: ExtractedFile
    preview: PreviewHandle

    def save(self, destination_dir: Path) -> Path:
        return save_file(self.file, destination_dir)


def materialize(
    files: Sequence[ExtractedFile],
    registry: PreviewRegistry,
) -> List[MaterializedFile]:
    """Create a preview for every file; previews made so far are revoked on failure."""
    materialized: List[MaterializedFile] = []
    try:
        for file in files:
            materialized.append(MaterializedFile(file=file, preview=registry.create(file)))
    except Exception:
        for item in materialized:
            registry.revoke(item.preview)
        raise
    return materialized
