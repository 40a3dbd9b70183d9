"""
Fix image categories in the saved catalog.

Buckets are kept as they are; any record whose category field disagrees with
the bucket holding it is re-stamped with the bucket's label.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gallery.config import get_settings
from gallery.errors import CatalogNotFoundError, GalleryError
from gallery.metadata_store import JsonFileMetadataStore
from gallery.reconciler import Reconciler, RepairReport


logger = logging.getLogger(__name__)


def report_lines(report: RepairReport) -> list[str]:
    lines = [
        f"  ! {item_id}: {old!r} -> {new!r}" for item_id, old, new in report.corrections
    ]
    lines.extend(f"  - {label}: {count}" for label, count in report.counts.items())
    lines.append(f"  - total: {report.total}")
    lines.append(f"  - fixed {report.fixed} category mismatches")
    return lines


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fix image categories")
    parser.add_argument(
        "--data-path",
        default=None,
        help="Catalog JSON file (defaults to GALLERY_DATA_PATH)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    store = JsonFileMetadataStore(args.data_path or settings.data_path, settings.categories)
    # The repair pass never talks to storage.
    reconciler = Reconciler(
        storage=None,
        store=store,
        labels=settings.categories,
        root_folder=settings.storage_root_folder,
    )
    try:
        report = reconciler.repair()
    except CatalogNotFoundError as exc:
        logger.error("Nothing to fix: %s", exc)
        return 1
    except GalleryError as exc:
        logger.error("Category fix failed: %s", exc)
        return 1

    logger.info("Category fix complete:\n%s", "\n".join(report_lines(report)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
