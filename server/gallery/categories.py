"""
Category classification for gallery items.
"""

from __future__ import annotations

from typing import Optional, Sequence

from gallery.config import DEFAULT_CATEGORIES


def is_valid_category(
    value: Optional[str], labels: Sequence[str] = DEFAULT_CATEGORIES
) -> bool:
    return isinstance(value, str) and value in labels


def category_from_path(
    path_hint: Optional[str], labels: Sequence[str] = DEFAULT_CATEGORIES
) -> Optional[str]:
    """Return the first label whose folder segment appears in ``path_hint``."""
    if not path_hint:
        return None
    haystack = "/" + path_hint
    for label in labels:
        if f"/{label}/" in haystack:
            return label
    return None


def classify(
    declared: Optional[str],
    path_hint: Optional[str],
    fallback: str,
    labels: Sequence[str] = DEFAULT_CATEGORIES,
) -> str:
    """
    Resolve the single category for an item.

    A valid declared category wins; otherwise the storage path or URL is
    searched for a ``/<label>/`` segment in label order; otherwise the
    bucket currently under consideration is returned.
    """
    if is_valid_category(declared, labels):
        return declared
    detected = category_from_path(path_hint, labels)
    if detected is not None:
        return detected
    return fallback
