"""Markdown renderers for SideGen.

This module converts Markdown bodies to HTML with mistune. Before the
Markdown pass, button shortcodes of the form
``[Label](button:ACTION:PARAM)`` are expanded into interactive HTML
controls.

Key classes:
- MarkdownRenderer: Renders Markdown to HTML with highlighting and heading anchors.

Key functions:
- expand_buttons: Rewrite button shortcodes into HTML.
"""

from __future__ import annotations

import html
import re

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html, escape_js_string
from .utils import slugify

BUTTON_RE = re.compile(r"\[([^\]]+)\]\(button:([^:)]+):([^)]+)\)")
TAG_RE = re.compile(r"<[^>]+>")

GFM_PLUGINS = ["strikethrough", "footnotes", "table", "url", "task_lists"]


def _button_html(match: re.Match) -> str:
    text, action, parameter = match.group(1), match.group(2), match.group(3)
    attr = escape_html(parameter)
    js_arg = escape_js_string(parameter)

    if action == "link":
        return (
            f'<a href="{attr}" class="btn btn-primary" target="_blank" '
            f'rel="noopener noreferrer">{text}</a>'
        )
    if action == "email":
        return f'<a href="mailto:{attr}" class="btn btn-secondary">{text}</a>'
    if action == "download":
        return f'<a href="{attr}" class="btn btn-outline" download>{text}</a>'
    if action == "alert":
        return (
            f'<button class="btn btn-primary" '
            f"onclick=\"alert('{js_arg}')\">{text}</button>"
        )
    if action == "scroll":
        return (
            f'<button class="btn btn-secondary" '
            f"onclick=\"smoothScrollTo('{js_arg}')\">{text}</button>"
        )
    if action == "toggle":
        return (
            f'<button class="btn btn-outline" '
            f"onclick=\"toggleElement('{js_arg}')\">{text}</button>"
        )
    # Unknown actions call a client-side function of the same name.
    return (
        f'<button class="btn btn-primary" '
        f"onclick=\"{escape_html(action)}('{js_arg}')\">{text}</button>"
    )


def expand_buttons(content: str) -> str:
    """Expand ``[text](button:ACTION:PARAM)`` shortcodes into HTML.

    Recognized actions are ``link``, ``email``, ``download``, ``alert``,
    ``scroll`` and ``toggle``; any other action becomes a button calling
    the client-side function of that name with PARAM as its argument.

    Args:
        content: Markdown source.

    Returns:
        Markdown source with shortcodes replaced by inline HTML.
    """
    return BUTTON_RE.sub(_button_html, content)


class _SiteHTMLRenderer(mistune.HTMLRenderer):
    """mistune renderer with heading ids and Pygments highlighting.

    Attributes:
        highlight_code: Whether fenced code blocks are highlighted.
        anchor_links: Whether heading text is wrapped in a self link.
    """

    def __init__(self, highlight_code: bool = True, anchor_links: bool = True):
        super().__init__(escape=False)
        self.highlight_code = highlight_code
        self.anchor_links = anchor_links

    def heading(self, text: str, level: int, **attrs) -> str:
        slug = slugify(html.unescape(TAG_RE.sub("", text)))
        inner = text
        if self.anchor_links and slug and "<a " not in text:
            inner = f'<a href="#{slug}" class="anchor-link">{text}</a>'
        id_attr = f' id="{slug}"' if slug else ""
        return f"<h{level}{id_attr}>{inner}</h{level}>\n"

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        if lang and self.highlight_code:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    A fresh mistune parser is built for every call so that rendering has
    no state carried between documents.

    Attributes:
        gfm: Enable GitHub-flavored extensions (tables, strikethrough, ...).
        highlight_code: Highlight fenced code blocks with Pygments.
        anchor_links: Wrap heading text in a link to its own anchor.
    """

    def __init__(
        self, gfm: bool = True, highlight_code: bool = True, anchor_links: bool = True
    ):
        self.gfm = gfm
        self.highlight_code = highlight_code
        self.anchor_links = anchor_links

    def render(self, content: str) -> str:
        """Expand shortcodes, then convert Markdown to HTML.

        Args:
            content: Markdown body (no frontmatter).

        Returns:
            Rendered HTML.
        """
        renderer = _SiteHTMLRenderer(
            highlight_code=self.highlight_code, anchor_links=self.anchor_links
        )
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=GFM_PLUGINS if self.gfm else []
        )
        return markdown(expand_buttons(content))
