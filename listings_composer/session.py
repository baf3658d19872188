"""UI-facing session that drives composition, export, and extraction."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

import requests

from .archive import extract_bundles
from .composer import run_composition
from .config import PipelineConfig
from .errors import (
    ArchiveDecodeError,
    CompositionError,
    ExportError,
    ExportTimeout,
    NoActiveContextError,
    PipelineStateError,
)
from .export import ExportCoordinator
from .host import DocumentHost
from .materialize import MaterializedFile, PreviewRegistry, materialize
from .models import BatchReport, Listing

logger = logging.getLogger("listings_composer")


class PipelineState(str, Enum):
    IDLE = "idle"
    INSERTING = "inserting"
    INSERTED_OK = "inserted_ok"
    INSERT_FAILED = "insert_failed"
    EXPORTING = "exporting"
    EXTRACTED_OK = "extracted_ok"
    EXPORT_FAILED = "export_failed"
    EXTRACT_FAILED = "extract_failed"


BUSY_STATES = {PipelineState.INSERTING, PipelineState.EXPORTING}

INSERT_FAILED_MESSAGE = "Failed to insert images."
EXPORT_FAILED_MESSAGE = "Failed to export design."
EXPORT_TIMEOUT_MESSAGE = "Export timed out."
NO_CONTEXT_MESSAGE = "Open a design before exporting."
EXTRACT_FAILED_MESSAGE = "Failed to extract exported files."


class PipelineSession:
    """Two-phase workflow: insert listings first, then export and extract."""

    def __init__(
        self,
        host: DocumentHost,
        config: PipelineConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.host = host
        self.config = config
        self._owns_http = session is None
        self.http = session or requests.Session()
        self.state = PipelineState.IDLE
        self.state_changes: List[PipelineState] = [PipelineState.IDLE]
        self.error: Optional[str] = None
        self.files: List[MaterializedFile] = []
        self.previews = PreviewRegistry(max_side=config.preview_max_side)
        self._composed = False
        self._export_task: Optional[asyncio.Task] = None
        self._exported = False

    def _set_state(self, state: PipelineState, error: Optional[str] = None) -> None:
        self.state = state
        self.error = error
        self.state_changes.append(state)
        logger.debug("Session state -> %s", state.value)

    @property
    def busy(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def can_export(self) -> bool:
        return self._composed and not self.busy

    async def insert_listings(self, listings: Sequence[Listing]) -> Optional[BatchReport]:
        if self.busy:
            raise PipelineStateError(f"Cannot insert while {self.state.value}")
        self._composed = False
        self._set_state(PipelineState.INSERTING)
        try:
            report = await run_composition(listings, self.host, self.config, session=self.http)
        except CompositionError as exc:
            logger.error(
                "Batch failed after %d inserted page(s)",
                len(exc.report.inserted_titles),
            )
            self._set_state(PipelineState.INSERT_FAILED, INSERT_FAILED_MESSAGE)
            return exc.report
        except ValueError as exc:
            logger.error("Invalid listing batch: %s", exc)
            self._set_state(PipelineState.INSERT_FAILED, INSERT_FAILED_MESSAGE)
            return None
        self._composed = True
        self._set_state(PipelineState.INSERTED_OK)
        return report

    async def _export_and_extract(self) -> List[MaterializedFile]:
        coordinator = ExportCoordinator(
            self.host,
            accepted_file_types=self.config.accepted_file_types,
            timeout=self.config.export_timeout,
        )
        urls = await coordinator.request_bundle_urls()
        self._exported = True
        extracted = await extract_bundles(
            urls,
            session=self.http,
            prefix=self.config.file_prefix,
            fetch_timeout=self.config.fetch_timeout,
        )
        return materialize(extracted, self.previews)

    async def export_and_extract(self) -> Optional[List[MaterializedFile]]:
        if not self.can_export:
            raise PipelineStateError("Export requires a successful insertion first")

        self._release_previews()
        self._exported = False
        self._set_state(PipelineState.EXPORTING)
        self._export_task = asyncio.ensure_future(self._export_and_extract())
        try:
            files = await self._export_task
        except NoActiveContextError as exc:
            logger.error("Export skipped: %s", exc)
            self._set_state(PipelineState.EXPORT_FAILED, NO_CONTEXT_MESSAGE)
            return None
        except ExportTimeout as exc:
            logger.error("Export timed out: %s", exc)
            self._set_state(PipelineState.EXPORT_FAILED, EXPORT_TIMEOUT_MESSAGE)
            return None
        except ExportError as exc:
            logger.error("Export failed: %s", exc)
            self._set_state(PipelineState.EXPORT_FAILED, EXPORT_FAILED_MESSAGE)
            return None
        except ArchiveDecodeError as exc:
            logger.error("Extraction failed: %s", exc)
            self._set_state(PipelineState.EXTRACT_FAILED, EXTRACT_FAILED_MESSAGE)
            return None
        except Exception:
            logger.exception("Export pipeline failed")
            if self._exported:
                self._set_state(PipelineState.EXTRACT_FAILED, EXTRACT_FAILED_MESSAGE)
            else:
                self._set_state(PipelineState.EXPORT_FAILED, EXPORT_FAILED_MESSAGE)
            return None
        except asyncio.CancelledError:
            self._set_state(PipelineState.EXPORT_FAILED, "Export cancelled.")
            raise
        finally:
            self._export_task = None

        self.files = files
        self._set_state(PipelineState.EXTRACTED_OK)
        return files

    def discard(self, item: MaterializedFile) -> None:
        """Drop a file from the session and release its preview."""
        self.previews.revoke(item.preview)
        self.files = [existing for existing in self.files if existing is not item]

    def save_all(self, destination_dir: Path) -> List[Path]:
        return [item.save(destination_dir) for item in self.files]

    def _release_previews(self) -> None:
        for item in self.files:
            self.previews.revoke(item.preview)
        self.files = []

    async def aclose(self) -> None:
        task = self._export_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.info("Cancelled in-flight export")
        self._release_previews()
        self.previews.close()
        if self._owns_http:
            self.http.close()
