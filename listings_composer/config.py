"""Configuration objects and constants for the listing pipeline."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .models import Listing

logger = logging.getLogger("listings_composer")

# Instagram post size, full-bleed square anchored at the top-left corner.
DEFAULT_PAGE_SIZE = 1080
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_EXPORT_TIMEOUT = 120.0
DEFAULT_FILE_PREFIX = "listing"
DEFAULT_PREVIEW_MAX_SIDE = 512

# Still-image, vector and video formats accepted for export.
ACCEPTED_FILE_TYPES: Tuple[str, ...] = ("jpg", "png", "gif", "svg", "mp4")


@dataclass
class PipelineConfig:
    """Top-level settings that control composition, export, and extraction."""

    output_root: Path
    page_size: int = DEFAULT_PAGE_SIZE
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    export_timeout: float = DEFAULT_EXPORT_TIMEOUT
    accepted_file_types: Tuple[str, ...] = ACCEPTED_FILE_TYPES
    file_prefix: str = DEFAULT_FILE_PREFIX
    preview_max_side: int = DEFAULT_PREVIEW_MAX_SIDE


def load_listings(path: Path) -> List[Listing]:
    """Read listings from a JSON file holding a list or a ``listings`` key."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, dict):
        payload = payload.get("listings")
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of listings in {path}")

    listings = [Listing.from_dict(item) for item in payload]
    seen = set()
    for listing in listings:
        if listing.id in seen:
            raise ValueError(f"Duplicate listing id {listing.id!r} in {path}")
        seen.add(listing.id)
    logger.debug("Loaded %d listing(s) from %s", len(listings), path)
    return listings
