"""Host document collaborator and a local Pillow-backed implementation."""

from __future__ import annotations

import asyncio
import io
import logging
import uuid
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

from PIL import Image, ImageOps

from .config import DEFAULT_PAGE_SIZE
from .errors import EncodingError
from .images import decode_data_uri
from .models import DocumentContext, ExportResult, ExportStatus, ImageElement
from .utils import now_millis, slugify

logger = logging.getLogger("listings_composer")


class DocumentHost(Protocol):
    """Document composition, page-context and export APIs of the host."""

    async def insert_page(self, title: str, elements: Sequence[ImageElement]) -> None:
        ...

    async def get_current_context(self) -> Optional[DocumentContext]:
        ...

    async def request_export(
        self, accepted_file_types: Iterable[str]
    ) -> Union[ExportResult, Mapping[str, Any]]:
        ...


@dataclass
class ComposedPage:
    """A rendered page held by the local host."""

    title: str
    image: Image.Image
    elements: List[ImageElement] = field(default_factory=list)


class LocalDocumentHost:
    """Design document rendered with Pillow and exported as a zip bundle.

    Pillow decoding and zip writing run in worker threads so the event loop
    only sequences the calls.
    """

    def __init__(self, output_dir: Path, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.output_dir = output_dir
        self.page_size = page_size
        self.document_id = uuid.uuid4().hex[:12]
        self.pages: List[ComposedPage] = []
        self._open = True

    def close(self) -> None:
        self._open = False

    def _render_page(self, title: str, elements: Sequence[ImageElement]) -> Image.Image:
        canvas = Image.new("RGB", (self.page_size, self.page_size), "white")
        for element in elements:
            blob = decode_data_uri(element.source)
            try:
                with Image.open(io.BytesIO(blob.data)) as raw_image:
                    fitted = ImageOps.fit(
                        raw_image.convert("RGB"),
                        (element.width, element.height),
                        Image.Resampling.LANCZOS,
                    )
            except OSError as exc:
                raise EncodingError(f"Element for page {title!r} is not an image: {exc}") from exc
            canvas.paste(fitted, (element.left, element.top))
        return canvas

    async def insert_page(self, title: str, elements: Sequence[ImageElement]) -> None:
        if not self._open:
            raise RuntimeError("Document is closed")
        canvas = await asyncio.to_thread(self._render_page, title, elements)
        self.pages.append(ComposedPage(title=title, image=canvas, elements=list(elements)))
        logger.debug("Inserted page %d (%s)", len(self.pages), title)

    async def get_current_context(self) -> Optional[DocumentContext]:
        if not self._open:
            return None
        return DocumentContext(document_id=self.document_id, page_count=len(self.pages))

    def _write_bundle(self, pages: List[ComposedPage], image_format: str, extension: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        bundle_path = self.output_dir / f"export-{now_millis()}.zip"
        with zipfile.ZipFile(bundle_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("pages/", b"")
            for index, page in enumerate(pages, start=1):
                buffer = io.BytesIO()
                page.image.save(buffer, format=image_format)
                slug = slugify(page.title, fallback="page")[:60]
                archive.writestr(f"pages/{index:02d}-{slug}.{extension}", buffer.getvalue())
        return bundle_path

    async def request_export(self, accepted_file_types: Iterable[str]) -> ExportResult:
        accepted = {file_type.lower() for file_type in accepted_file_types}
        if "png" in accepted:
            image_format, extension = "PNG", "png"
        elif "jpg" in accepted:
            image_format, extension = "JPEG", "jpg"
        else:
            logger.warning("No still-image format accepted (%s)", ", ".join(sorted(accepted)))
            return ExportResult(status=ExportStatus.FAILED)
        if not self.pages:
            logger.warning("Nothing to export from document %s", self.document_id)
            return ExportResult(status=ExportStatus.FAILED)

        bundle_path = await asyncio.to_thread(
            self._write_bundle, list(self.pages), image_format, extension
        )
        logger.info("Exported %d page(s) to %s", len(self.pages), bundle_path)
        return ExportResult(
            status=ExportStatus.COMPLETED,
            bundle_urls=(bundle_path.resolve().as_uri(),),
        )
