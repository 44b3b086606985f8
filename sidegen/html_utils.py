"""Escaping and URL helpers shared by the renderers, templates and feeds."""

from __future__ import annotations

from markupsafe import escape


def escape_html(text: str) -> str:
    """Escape text for HTML element content, attribute values and XML feeds.

    >>> escape_html('Tom & "Jerry"')
    'Tom &amp; &#34;Jerry&#34;'
    """
    return str(escape(text))


def escape_js_string(text: str) -> str:
    """Escape text for a single-quoted JS string inside an HTML attribute."""
    return text.replace("\\", "\\\\").replace("'", "\\'").replace('"', "&quot;")


def join_root_url(root_url: str, path: str) -> str:
    """Prefix ``path`` with ``root_url`` using exactly one slash between them.

    An empty root leaves the path untouched.
    """
    if not root_url:
        return path
    return root_url.rstrip("/") + "/" + path.lstrip("/")
