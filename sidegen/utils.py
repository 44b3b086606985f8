"""Utility functions for SideGen.

This module contains small helpers shared across the pipeline: slug
generation, frontmatter value normalization, date coercion and output
directory housekeeping.

Key functions:
    slugify: Convert arbitrary text to a URL slug.
    normalize_list: Normalize tag/category frontmatter values to a list.
    coerce_datetime: Turn frontmatter date values into naive datetimes.
    to_strftime: Translate a YYYY-MM-DD style date format to strftime.
    ensure_clean_dir: Ensure a directory exists and is empty.
    is_markdown: Check if a path is a Markdown content file.
"""

from __future__ import annotations

import re
import shutil
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

MARKDOWN_SUFFIXES = (".md", ".mdx", ".markdown")

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_COLLAPSE_RE = re.compile(r"[\s_-]+")

# Longest tokens first so "MMMM" wins over "MM".
_DATE_TOKENS = (
    ("YYYY", "%Y"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)
_DATE_TOKEN_RE = re.compile("|".join(token for token, _ in _DATE_TOKENS))


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug.

    Lowercases, drops everything that is not a word character, whitespace
    or hyphen, collapses runs of whitespace/underscores/hyphens into a
    single hyphen and trims hyphens from both ends. The result is stable
    under repeated application.

    Args:
        text: Any string (title, filename stem, tag name).

    Returns:
        Slug string, possibly empty.

    Examples:
        >>> slugify("Hello World! Test")
        'hello-world-test'
    """
    slug = str(text).lower().strip()
    slug = _SLUG_STRIP_RE.sub("", slug)
    slug = _SLUG_COLLAPSE_RE.sub("-", slug)
    return slug.strip("-")


def normalize_list(value: Any) -> list[str]:
    """Normalize a tags/categories frontmatter value.

    Lists keep their order with items converted to strings; null and
    blank items are dropped. Comma separated strings are split and
    trimmed. Anything else becomes an empty list.

    Examples:
        >>> normalize_list("a, b")
        ['a', 'b']
        >>> normalize_list(None)
        []
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        items = (str(item).strip() for item in value if item is not None)
        return [item for item in items if item]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def coerce_datetime(value: Any) -> datetime | None:
    """Coerce a frontmatter date value into a naive datetime.

    PyYAML already turns unquoted ISO dates into ``date``/``datetime``
    objects; quoted strings are parsed with ``datetime.fromisoformat``.
    Aware datetimes are converted to UTC and made naive so that pages
    from different sources stay comparable.

    Returns:
        A naive datetime, or None if the value cannot be interpreted.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


def to_strftime(fmt: str) -> str:
    """Translate a ``YYYY-MM-DD`` style format into a strftime pattern.

    Examples:
        >>> to_strftime("YYYY-MM-DD")
        '%Y-%m-%d'
        >>> to_strftime("MMMM D")
        '%B D'
    """
    mapping = dict(_DATE_TOKENS)
    return _DATE_TOKEN_RE.sub(lambda m: mapping[m.group(0)], fmt)


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path))
    path.mkdir(parents=True, exist_ok=True)


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown content file (case-insensitive)."""
    return path.suffix.lower() in MARKDOWN_SUFFIXES
