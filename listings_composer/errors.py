"""Error kinds raised by the pipeline stages."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchReport


class PipelineError(Exception):
    """Base class for pipeline failures."""


class FetchError(PipelineError):
    """Network retrieval failed or returned a non-success status."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class EncodingError(PipelineError):
    """A blob could not be converted to or from a data URI."""


class CompositionError(PipelineError):
    """A composition batch stopped before every listing was inserted."""

    def __init__(self, message: str, report: "BatchReport") -> None:
        super().__init__(message)
        self.report = report


class NoActiveContextError(PipelineError):
    """Export attempted without an open design."""


class ExportError(PipelineError):
    """Export request was rejected, errored, or did not complete."""


class ExportTimeout(ExportError):
    """Export request did not reach a terminal state in time."""


class ArchiveDecodeError(PipelineError):
    """Bundle is not a readable archive or an entry failed to decode."""


class PipelineStateError(PipelineError):
    """Operation is not allowed in the current session state."""
