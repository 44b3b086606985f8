"""Collection helpers for SideGen.

Grouping, sorting and taxonomy indexes over Pages. Collections are
always rebuilt from the full page list; nothing here patches an existing
grouping in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .content import Page

DEFAULT_SORT_BY = "date"
DEFAULT_SORT_ORDER = "desc"


def _sort_value(page: Page, field: str) -> Any:
    if hasattr(page, field):
        value = getattr(page, field)
    else:
        value = page.frontmatter.get(field)
    if isinstance(value, str):
        return value.lower()
    return value


def sort_pages(
    pages: Iterable[Page],
    sort_by: str = DEFAULT_SORT_BY,
    sort_order: str = DEFAULT_SORT_ORDER,
) -> list[Page]:
    """Sort pages by a Page attribute or frontmatter key.

    Pages without a value for ``sort_by`` go last in either order. The
    sort is stable, so ties keep discovery order.

    Args:
        pages: Pages to sort.
        sort_by: Page attribute name, or frontmatter key as a fallback.
        sort_order: ``"asc"`` or ``"desc"``.

    Returns:
        New sorted list.
    """
    present: list[Page] = []
    missing: list[Page] = []
    for page in pages:
        (missing if _sort_value(page, sort_by) is None else present).append(page)
    reverse = sort_order == "desc"
    try:
        ordered = sorted(present, key=lambda p: _sort_value(p, sort_by), reverse=reverse)
    except TypeError:
        # Mixed value types: fall back to comparing their text form.
        ordered = sorted(
            present, key=lambda p: str(_sort_value(p, sort_by)), reverse=reverse
        )
    return ordered + missing


def organize_collections(
    pages: Iterable[Page], settings: Mapping[str, Mapping[str, Any]] | None = None
) -> dict[str, list[Page]]:
    """Group pages by collection name and sort each group.

    Args:
        pages: Every page in the catalog.
        settings: The ``collections`` config mapping, providing
            ``sort_by``/``sort_order`` per collection name.

    Returns:
        Mapping of collection name to sorted pages, in first-seen order.
    """
    settings = settings or {}
    grouped: dict[str, list[Page]] = {}
    for page in pages:
        grouped.setdefault(page.collection, []).append(page)
    for name, members in grouped.items():
        options = settings.get(name) or {}
        grouped[name] = sort_pages(
            members,
            options.get("sort_by") or DEFAULT_SORT_BY,
            options.get("sort_order") or DEFAULT_SORT_ORDER,
        )
    return grouped


def build_taxonomy(pages: Iterable[Page], attribute: str) -> dict[str, list[Page]]:
    """Index pages by each value of a list attribute (``tags``/``categories``).

    Args:
        pages: Pages to index.
        attribute: Name of a list-of-strings Page attribute.

    Returns:
        Mapping of term to the pages carrying it, in page order.
    """
    index: dict[str, list[Page]] = {}
    for page in pages:
        for term in getattr(page, attribute):
            index.setdefault(term, []).append(page)
    return index


class PageCollection(Sequence["Page"]):
    """Lightweight helper for working with lists of Pages in templates and code."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = list(pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def collection(self, name: str) -> PageCollection:
        return PageCollection(p for p in self._pages if p.collection == name)

    def with_tag(self, tag: str) -> PageCollection:
        return PageCollection(p for p in self._pages if tag in p.tags)

    def in_category(self, category: str) -> PageCollection:
        return PageCollection(p for p in self._pages if category in p.categories)

    def drafts(self) -> PageCollection:
        return PageCollection(p for p in self._pages if p.draft)

    def published(self) -> PageCollection:
        return PageCollection(p for p in self._pages if not p.draft)

    def sorted(
        self, sort_by: str = DEFAULT_SORT_BY, sort_order: str = DEFAULT_SORT_ORDER
    ) -> PageCollection:
        return PageCollection(sort_pages(self._pages, sort_by, sort_order))

    def latest(self, count: int = 5) -> PageCollection:
        return PageCollection(self.sorted()[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"
