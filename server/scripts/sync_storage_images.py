"""
Rebuild the gallery catalog from the objects in media storage.

Each category folder is listed and becomes that category's bucket. A category
whose listing fails or is empty keeps the records already saved for it.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gallery.catalog import Catalog
from gallery.dependencies import get_gallery_service
from gallery.errors import GalleryError


logger = logging.getLogger(__name__)


def format_counts(catalog: Catalog) -> str:
    lines = [f"  - {label}: {count}" for label, count in catalog.counts().items()]
    lines.append(f"  - total: {catalog.total_count()}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync the catalog from media storage")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s:%(message)s",
    )
    try:
        service = get_gallery_service()
        if not service.storage.ping():
            logger.error(
                "Media storage is unreachable; check COS_* and AWS_* settings"
            )
            return 1
        catalog = service.sync()
    except GalleryError as exc:
        logger.error("Sync failed: %s", exc)
        return 1

    logger.info("Sync complete:\n%s", format_counts(catalog))
    return 0


if __name__ == "__main__":
    sys.exit(main())
