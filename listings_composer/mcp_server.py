"""MCP server exposing the listing composer as tools."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List

from mcp.server.fastmcp import FastMCP

from .archive import extract_bundles
from .config import PipelineConfig
from .errors import ArchiveDecodeError
from .host import LocalDocumentHost
from .models import Listing
from .session import PipelineSession, PipelineState

logger = logging.getLogger("listings_composer.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="listings-composer")


def _summarize(rows: List[str]) -> str:
    return "\n".join(rows) + "\n" if rows else "No files extracted.\n"


@mcp.tool()
async def compose(
    listings: List[Dict[str, Any]],
) -> str:
    """Insert listing images as pages, export the design, and list the extracted files."""

    parsed = [Listing.from_dict(item) for item in listings]
    with tempfile.TemporaryDirectory(prefix="listings-composer-") as tmp_dir:
        config = PipelineConfig(output_root=Path(tmp_dir))
        host = LocalDocumentHost(config.output_root / "exports", page_size=config.page_size)
        session = PipelineSession(host, config)
        try:
            await session.insert_listings(parsed)
            if session.state is not PipelineState.INSERTED_OK:
                raise RuntimeError(session.error or "Insertion failed")
            files = await session.export_and_extract()
            if files is None:
                raise RuntimeError(session.error or "Export failed")
            rows = [
                f"{item.file.name}\t{item.file.mime_type}\t{item.file.size}"
                for item in files
            ]
        finally:
            await session.aclose()
    return _summarize(rows)


@mcp.tool()
async def extract(
    url: str,
) -> str:
    """Unpack an exported bundle and list its files."""

    try:
        files = await extract_bundles([url])
    except ArchiveDecodeError as exc:
        raise RuntimeError(f"Failed to extract bundle {url}: {exc}") from exc
    return _summarize([f"{file.name}\t{file.mime_type}\t{file.size}" for file in files])


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
