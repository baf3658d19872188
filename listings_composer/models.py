"""Data models used throughout the listing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Listing:
    """A named reference to one source image to be inserted as a page."""

    id: str
    image_url: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Listing":
        listing_id = data.get("id")
        image_url = data.get("imageUrl") or data.get("image_url")
        if not listing_id or not isinstance(listing_id, str):
            raise ValueError(f"Listing is missing an id: {data!r}")
        if not image_url or not isinstance(image_url, str):
            raise ValueError(f"Listing {listing_id!r} is missing an image URL")
        return cls(id=listing_id, image_url=image_url)


@dataclass
class Blob:
    """Binary payload with an optional MIME type."""

    data: bytes
    mime_type: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def read(self) -> bytes:
        return self.data


@dataclass
class ImageElement:
    """Image element placed on a design page."""

    source: str
    top: int = 0
    left: int = 0
    width: int = 1080
    height: int = 1080
    type: str = "image"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "source": self.source,
            "position": {"top": self.top, "left": self.left},
            "size": {"width": self.width, "height": self.height},
        }


@dataclass
class CompositionResult:
    """Outcome of inserting a single listing."""

    listing_id: str
    title: Optional[str] = None
    error: Optional[str] = None

    @property
    def inserted(self) -> bool:
        return self.title is not None and self.error is None


class BatchStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchReport:
    """Aggregate outcome of a composition batch."""

    results: List[CompositionResult] = field(default_factory=list)
    status: BatchStatus = BatchStatus.SUCCEEDED

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def inserted_titles(self) -> List[str]:
        return [result.title for result in self.results if result.inserted]


class ExportStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExportResult:
    """Terminal response of an export request."""

    status: ExportStatus
    bundle_urls: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportResult":
        status = ExportStatus(str(data.get("status", "")).lower())
        blobs = data.get("exportBlobs") or []
        urls = tuple(blob["url"] for blob in blobs if blob.get("url"))
        return cls(status=status, bundle_urls=urls)


@dataclass
class DocumentContext:
    """The design currently open in the host."""

    document_id: str
    page_count: int = 0


@dataclass
class ExtractedFile:
    """A single file unpacked from an export bundle."""

    name: str
    mime_type: str
    content: bytes
    size: int


@dataclass
class PreviewHandle:
    """Revocable local reference to previewable content."""

    uri: str
    path: Path
