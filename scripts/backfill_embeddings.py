#!/usr/bin/env python
"""Recompute description embeddings for existing events.

Usage:
    python -m scripts.backfill_embeddings --ids 65f0c1... 65f0c2...
    python -m scripts.backfill_embeddings --ids-file event_ids.txt

Exits non-zero if any event could not be updated.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from event_search.api.dependencies import build_services
from event_search.config import get_settings
from event_search.exceptions import EventSearchError, PartialBackfillFailure
from event_search.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def read_ids(ids: list[str], ids_file: Path | None) -> list[str]:
    """Collect event ids from the command line and an optional file."""
    collected = list(ids)
    if ids_file is not None:
        for line in ids_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                collected.append(line)
    return collected


async def run_backfill(event_ids: list[str], output_path: Path | None = None) -> bool:
    """Run the backfill and return whether every event was updated.

    Args:
        event_ids: Events to update.
        output_path: Optional path to save the per-id report as JSON.

    Returns:
        True if no event failed.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)

    services = build_services(settings)
    try:
        await services.vector_index.ensure_collection(services.embedding_provider.dimensions)
        report = await services.backfill.backfill(event_ids)
    finally:
        await services.close()

    print("\n" + "=" * 60)
    print("EMBEDDING BACKFILL SUMMARY")
    print("=" * 60)
    print(f"Requested: {len(report.items)}")
    print(f"Updated:   {len(report.succeeded)}")
    print(f"Failed:    {len(report.failed)}")
    for item in report.failures():
        print(f"  {item.event_id}: {item.error}")
    print("=" * 60)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(report.model_dump(by_alias=True), indent=2),
            encoding="utf-8",
        )
        logger.info(f"Report saved to {output_path}")

    try:
        report.raise_for_failures()
    except PartialBackfillFailure as e:
        logger.error(e.message, extra={"failed": e.details["failed"]})
        return False
    return True


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Recompute event description embeddings")
    parser.add_argument("--ids", nargs="*", default=[], help="Event ids to update")
    parser.add_argument("--ids-file", type=Path, help="File with one event id per line")
    parser.add_argument("--output", type=Path, help="Path to save the JSON report")

    args = parser.parse_args()

    event_ids = read_ids(args.ids, args.ids_file)
    if not event_ids:
        parser.error("no event ids given")

    try:
        passed = asyncio.run(run_backfill(event_ids, args.output))
    except EventSearchError as e:
        logger.error(f"Backfill aborted: {e.message}")
        sys.exit(2)

    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
