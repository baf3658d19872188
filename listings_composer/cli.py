"""Command-line entry point for the listing composer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Sequence

from .archive import extract_bundles
from .config import (
    DEFAULT_EXPORT_TIMEOUT,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_FILE_PREFIX,
    DEFAULT_PAGE_SIZE,
    PipelineConfig,
    load_listings,
)
from .errors import ArchiveDecodeError
from .host import LocalDocumentHost
from .materialize import save_file
from .models import Listing
from .session import PipelineSession, PipelineState

logger = logging.getLogger("listings_composer.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("run", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where exported bundles and downloads should be written",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_FETCH_TIMEOUT,
        help="Timeout in seconds for each image or bundle download",
    )
    parser.add_argument(
        "--prefix",
        default=DEFAULT_FILE_PREFIX,
        help="Prefix used for the names of extracted files",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "listings",
        type=Path,
        help="JSON file with a list of {\"id\", \"imageUrl\"} listings",
    )
    parser.add_argument(
        "--export-timeout",
        type=float,
        default=DEFAULT_EXPORT_TIMEOUT,
        help="Seconds to wait for the export to finish (0 waits indefinitely)",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=DEFAULT_PAGE_SIZE,
        help="Width and height of each composed page in pixels",
    )
    _add_common_arguments(parser)


def _add_extract_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="+", help="One or more bundle URLs (http(s) or file)")
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compose listing images into design pages, export them, and unpack the bundle.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Insert listings, export the design, and save the extracted files"
    )
    _add_run_arguments(run_parser)

    extract_parser = subparsers.add_parser(
        "extract", help="Unpack an exported bundle into individual files"
    )
    _add_extract_arguments(extract_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


async def run_pipeline(listings: List[Listing], config: PipelineConfig) -> List[Path]:
    """Compose, export, and extract; returns the saved file paths."""
    host = LocalDocumentHost(config.output_root / "exports", page_size=config.page_size)
    session = PipelineSession(host, config)
    try:
        await session.insert_listings(listings)
        if session.state is not PipelineState.INSERTED_OK:
            raise RuntimeError(session.error or "Insertion failed")
        await session.export_and_extract()
        if session.state is not PipelineState.EXTRACTED_OK:
            raise RuntimeError(session.error or "Export failed")
        return session.save_all(config.output_root / "downloads")
    finally:
        await session.aclose()


def _run(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    try:
        listings = load_listings(args.listings)
    except (OSError, ValueError) as exc:
        logger.error("Could not read listings from %s: %s", args.listings, exc)
        return 2

    config = PipelineConfig(
        output_root=Path(args.output).resolve(),
        page_size=args.page_size,
        fetch_timeout=args.timeout,
        export_timeout=args.export_timeout or None,
        file_prefix=args.prefix,
    )

    overall_start = time.perf_counter()
    try:
        saved = asyncio.run(run_pipeline(listings, config))
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    total_elapsed = time.perf_counter() - overall_start

    logger.info(
        "Finished in %.2fs (%d listing(s) inserted, %d file(s) extracted)",
        total_elapsed,
        len(listings),
        len(saved),
    )
    if args.verbose:
        for path in saved:
            logger.debug("Saved %s", path)
    return 0


def _run_extract(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    destination = Path(args.output).resolve() / "downloads"
    try:
        files = asyncio.run(
            extract_bundles(args.urls, prefix=args.prefix, fetch_timeout=args.timeout)
        )
    except ArchiveDecodeError as exc:
        logger.error("Failed to extract exported files: %s", exc)
        return 1
    for file in files:
        save_file(file, destination)
    logger.info("Extracted %d file(s) to %s", len(files), destination)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "run":
        code = _run(args)
    else:
        code = _run_extract(args)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
