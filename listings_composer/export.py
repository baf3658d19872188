"""Export request coordination against the host document."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Mapping, Optional

from .config import ACCEPTED_FILE_TYPES, DEFAULT_EXPORT_TIMEOUT
from .errors import ExportError, ExportTimeout, NoActiveContextError
from .host import DocumentHost
from .models import DocumentContext, ExportResult, ExportStatus

logger = logging.getLogger("listings_composer")


class ExportCoordinator:
    """Requests an export of the open design and returns its bundle URLs.

    The wait for a terminal outcome is bounded by ``timeout`` seconds; pass
    ``None`` to wait indefinitely. Cancelling the awaiting task abandons the
    request.
    """

    def __init__(
        self,
        host: DocumentHost,
        accepted_file_types: Iterable[str] = ACCEPTED_FILE_TYPES,
        timeout: Optional[float] = DEFAULT_EXPORT_TIMEOUT,
    ) -> None:
        self.host = host
        self.accepted_file_types = tuple(accepted_file_types)
        self.timeout = timeout

    async def _context(self) -> Optional[DocumentContext]:
        try:
            return await self.host.get_current_context()
        except Exception as exc:  # noqa: BLE001 - collaborator failures become ExportError
            logger.error("Page-context query failed: %s", exc)
            raise ExportError(f"Page-context query failed: {exc}") from exc

    async def _request(self) -> ExportResult:
        try:
            result = await asyncio.wait_for(
                self.host.request_export(accepted_file_types=self.accepted_file_types),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Export did not finish within %.1fs", self.timeout)
            raise ExportTimeout(f"Export did not finish within {self.timeout}s") from exc
        except ExportError:
            raise
        except Exception as exc:  # noqa: BLE001 - collaborator failures become ExportError
            logger.error("Export request failed: %s", exc)
            raise ExportError(f"Export request failed: {exc}") from exc

        if isinstance(result, Mapping):
            # Raw collaborator payload: {"status", "exportBlobs": [{"url"}]}
            try:
                result = ExportResult.from_dict(result)
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("Unrecognised export response: %s", exc)
                raise ExportError(f"Unrecognised export response: {exc}") from exc
        return result

    async def request_bundle_urls(self) -> List[str]:
        context = await self._context()
        if context is None:
            raise NoActiveContextError("No design is open")

        logger.info(
            "Requesting export of %s (%s)",
            context.document_id,
            ", ".join(self.accepted_file_types),
        )
        result = await self._request()

        if result.status is ExportStatus.COMPLETED:
            if not result.bundle_urls:
                raise ExportError("Export completed without any files")
            logger.info("Export completed with %d bundle(s)", len(result.bundle_urls))
            return list(result.bundle_urls)
        if result.status is ExportStatus.FAILED:
            logger.error("Export of %s failed", context.document_id)
            raise ExportError("Export failed")
        if result.status is ExportStatus.PENDING:
            logger.error("Export of %s returned without reaching a terminal state", context.document_id)
            raise ExportError("Export did not complete")
        raise ExportError(f"Unknown export status {result.status!r}")
