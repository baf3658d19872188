"""Sequential composition of listing images into design pages."""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence

import requests

from .config import DEFAULT_FETCH_TIMEOUT, DEFAULT_PAGE_SIZE, PipelineConfig
from .errors import CompositionError
from .host import DocumentHost
from .images import encode_blob, fetch_blob
from .models import BatchReport, BatchStatus, CompositionResult, ImageElement, Listing

logger = logging.getLogger("listings_composer")


def build_page_element(source: str, page_size: int = DEFAULT_PAGE_SIZE) -> ImageElement:
    """Full-bleed square image anchored at the page origin."""
    return ImageElement(source=source, top=0, left=0, width=page_size, height=page_size)


async def compose_listing(
    listing: Listing,
    host: DocumentHost,
    session: requests.Session,
    page_size: int = DEFAULT_PAGE_SIZE,
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> str:
    """Fetch, encode and insert one listing; returns the page title."""
    blob = await fetch_blob(listing.image_url, session=session, timeout=fetch_timeout)
    data_uri = await encode_blob(blob)
    title = listing.id
    await host.insert_page(title, [build_page_element(data_uri, page_size)])
    return title


async def run_composition(
    listings: Sequence[Listing],
    host: DocumentHost,
    config: Optional[PipelineConfig] = None,
    session: Optional[requests.Session] = None,
) -> BatchReport:
    """Insert one page per listing in order, stopping at the first failure."""
    if not listings:
        raise ValueError("At least one listing is required")

    page_size = config.page_size if config else DEFAULT_PAGE_SIZE
    fetch_timeout = config.fetch_timeout if config else DEFAULT_FETCH_TIMEOUT
    owns_session = session is None
    session = session or requests.Session()

    report = BatchReport()
    start = time.perf_counter()
    try:
        for index, listing in enumerate(listings, start=1):
            logger.info("Inserting listing %s (%d/%d)", listing.id, index, len(listings))
            try:
                title = await compose_listing(
                    listing,
                    host,
                    session,
                    page_size=page_size,
                    fetch_timeout=fetch_timeout,
                )
            except Exception as exc:  # noqa: BLE001 - surfaced as one batch error
                logger.error("Image insertion failed for listing %s: %s", listing.id, exc)
                report.results.append(CompositionResult(listing_id=listing.id, error=str(exc)))
                report.status = BatchStatus.FAILED
                raise CompositionError("Failed to insert images.", report) from exc
            report.results.append(CompositionResult(listing_id=listing.id, title=title))
    finally:
        if owns_session:
            session.close()

    logger.info(
        "Inserted %d page(s) in %.2fs",
        len(report.results),
        time.perf_counter() - start,
    )
    return report
