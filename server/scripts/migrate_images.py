"""
Upload local image folders into the gallery.

Expects one folder per category under --source, named ``<category>_images``.
Captions can be supplied as a JSON file mapping each category to a list of
captions, matched to the folder's files in sorted order.
"""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
import time
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gallery.dependencies import get_gallery_service
from gallery.errors import GalleryError
from gallery.media import MEDIA_EXTENSIONS
from gallery.service import GalleryService, MediaUpload


logger = logging.getLogger(__name__)


def collect_media_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in MEDIA_EXTENSIONS
    )


def load_captions(path: Optional[Path]) -> dict[str, list[str]]:
    if path is None:
        return {}
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain an object of category -> captions")
    return {label: list(captions or []) for label, captions in payload.items()}


def migrate_category(
    service: GalleryService,
    category: str,
    directory: Path,
    captions: list[str],
    *,
    delay: float = 0.0,
) -> int:
    files = collect_media_files(directory)
    logger.info("Found %d files in %s category", len(files), category)
    migrated = 0
    for index, path in enumerate(files):
        caption = captions[index] if index < len(captions) else ""
        upload = MediaUpload(
            filename=path.name,
            data=path.read_bytes(),
            content_type=mimetypes.guess_type(path.name)[0],
        )
        try:
            service.upload([upload], category, [caption])
        except GalleryError as exc:
            logger.error("Error uploading %s: %s", path, exc)
            continue
        migrated += 1
        logger.info("Uploaded %d/%d: %s", index + 1, len(files), path.name)
        if delay:
            time.sleep(delay)
    return migrated


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Migrate local images into the gallery")
    parser.add_argument(
        "--source",
        type=Path,
        required=True,
        help="Directory holding <category>_images folders",
    )
    parser.add_argument(
        "--captions",
        type=Path,
        default=None,
        help="JSON file mapping category to a list of captions",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.5,
        help="Seconds to wait between uploads",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    try:
        captions = load_captions(args.captions)
        service = get_gallery_service()
    except (OSError, ValueError, GalleryError) as exc:
        logger.error("Migration could not start: %s", exc)
        return 1

    totals = {}
    for category in service.labels:
        totals[category] = migrate_category(
            service,
            category,
            args.source / f"{category}_images",
            captions.get(category, []),
            delay=args.delay,
        )

    logger.info("Migration complete: %s", totals)
    return 0


if __name__ == "__main__":
    sys.exit(main())
