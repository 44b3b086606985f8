"""Template rendering for SideGen.

Templates are plain render functions held in an explicit registry: a
render function takes the data mapping (``page``, ``site``,
``collections`` and friends) and returns HTML. Jinja2 files found in the
project's templates directory (and the active theme) are compiled and
registered as such functions; Python callers can register their own.

Key classes:
- TemplateRegistry: Name to render function mapping for templates and layouts.
- TemplateRenderer: Resolves templates and layouts, isolates render failures.
- RenderResult: Rendered HTML plus the error message when rendering failed.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape
from markupsafe import Markup, escape
from pygments.formatters import HtmlFormatter

from .extractors import TocEntry
from .html_utils import escape_html, join_root_url
from .utils import slugify, to_strftime

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent / "builtin"
TEMPLATE_SUFFIXES = (".jinja", ".html")
LAYOUTS_FOLDER = "layouts"
PARTIALS_FOLDER = "partials"
SHELL_LAYOUT = "shell"
DEFAULT_TEMPLATE = "default"
ERROR_TEMPLATE = "error"
BUILTIN_TEMPLATES = ("default", "collection", "tag", "category", "error")

RenderFunction = Callable[[Mapping[str, Any]], str]


@dataclass(frozen=True)
class RenderResult:
    """Outcome of rendering one document.

    ``html`` is always usable: on failure it holds the error document.
    """

    html: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def render_toc(source: Any) -> Markup:
    """Render a table of contents as nested ``<ul>`` lists.

    Args:
        source: A Page (its ``toc`` is used) or a list of TocEntry.

    Returns:
        Markup-safe HTML, empty when there are no headings.
    """
    entries: list[TocEntry] = list(getattr(source, "toc", source) or [])
    if not entries:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []

    for entry in entries:
        level = entry.level

        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        elif not level_stack or level > level_stack[-1]:  # pragma: no branch
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(
            f'<li><a href="{escape(entry.anchor)}">{escape(entry.text)}</a>'
        )

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


class JinjaRenderFunction:
    """Adapts a compiled Jinja template to the render function signature."""

    def __init__(self, template: Template):
        self.template = template

    def __call__(self, data: Mapping[str, Any]) -> str:
        return self.template.render(dict(data))

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"JinjaRenderFunction({self.template.name!r})"


class TemplateRegistry:
    """Registry of template and layout render functions by name."""

    def __init__(self) -> None:
        self._templates: dict[str, RenderFunction] = {}
        self._layouts: dict[str, RenderFunction] = {}

    def register_template(self, name: str, render: RenderFunction) -> None:
        """Register a template render function.

        Raises:
            TypeError: If ``render`` is not callable.
        """
        if not callable(render):
            raise TypeError(f"Template '{name}' must be callable")
        self._templates[name] = render

    def register_layout(self, name: str, render: RenderFunction) -> None:
        """Register a layout render function.

        Raises:
            TypeError: If ``render`` is not callable.
        """
        if not callable(render):
            raise TypeError(f"Layout '{name}' must be callable")
        self._layouts[name] = render

    def get_template(self, name: str) -> RenderFunction | None:
        return self._templates.get(name)

    def get_layout(self, name: str) -> RenderFunction | None:
        return self._layouts.get(name)

    @property
    def template_names(self) -> list[str]:
        return sorted(self._templates)

    @property
    def layout_names(self) -> list[str]:
        return sorted(self._layouts)


class TemplateRenderer:
    """Renders documents through registered templates and layouts.

    Resolution order for the body template is the registry, then the
    built-in template of the same name, then the built-in default
    template. Layouts resolve from the page layout, then
    ``default_layout``, then the built-in HTML shell. Any exception
    raised while rendering becomes an error document.

    Attributes:
        config: Normalized site configuration.
        registry: Template and layout registry.
        env: Jinja environment for project and theme templates.
        builtin_env: Jinja environment for the packaged templates.
    """

    def __init__(
        self,
        config: dict[str, Any],
        registry: TemplateRegistry | None = None,
        load_directories: bool = True,
    ):
        """Initialize the renderer.

        Args:
            config: Normalized site configuration.
            registry: Optional pre-populated registry.
            load_directories: Scan the templates and theme directories.
        """
        self.config = config
        self.registry = registry or TemplateRegistry()
        self.builtin_env = self._make_environment([BUILTIN_DIR])
        self._builtins = {
            name: JinjaRenderFunction(self.builtin_env.get_template(f"{name}.html.jinja"))
            for name in BUILTIN_TEMPLATES
        }
        self._shell = JinjaRenderFunction(
            self.builtin_env.get_template(f"{SHELL_LAYOUT}.html.jinja")
        )
        self.env = self._make_environment(self._search_paths())
        if load_directories:
            self.load_templates()

    def _search_paths(self) -> list[Path]:
        paths = []
        templates_dir = self.config.get("templates_dir")
        if templates_dir:
            paths.append(Path(templates_dir))
        theme_dir = self._theme_dir()
        if theme_dir is not None:
            paths.append(theme_dir)
        return paths

    def _theme_dir(self) -> Path | None:
        themes_dir = self.config.get("themes_dir")
        theme_name = (self.config.get("theme") or {}).get("name")
        if not themes_dir or not theme_name:
            return None
        return Path(themes_dir) / theme_name

    def _make_environment(self, search_paths: list[Path]) -> Environment:
        env = Environment(
            loader=FileSystemLoader([str(p) for p in search_paths]),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
        )
        env.globals["config"] = self.config
        env.globals["url_for"] = self.url_for
        env.globals["absolute_url"] = self.absolute_url
        env.globals["render_toc"] = render_toc
        env.globals["pygments_css"] = self._pygments_css
        env.filters["format_date"] = self.format_date
        env.filters["slugify"] = slugify
        return env

    @staticmethod
    def _pygments_css() -> str:
        return HtmlFormatter().get_style_defs(".highlight")

    def url_for(self, path: str) -> str:
        """Return a site-relative URL path; external URLs pass through."""
        if path.startswith(("http://", "https://", "//")):
            return path
        return path if path.startswith("/") else f"/{path}"

    def absolute_url(self, path: str) -> str:
        """Join a path with ``base_url`` (unchanged when no base URL is set)."""
        if path.startswith(("http://", "https://", "//")):
            return path
        return join_root_url(self.config.get("base_url", ""), self.url_for(path))

    def format_date(self, value: Any, fmt: str | None = None) -> str:
        """Jinja filter formatting a date with ``date_format`` tokens."""
        if not isinstance(value, datetime):
            return "" if value is None else str(value)
        pattern = fmt or self.config.get("date_format") or "YYYY-MM-DD"
        return value.strftime(to_strftime(pattern))

    def load_templates(self) -> None:
        """Compile and register every template file found.

        The theme directory is scanned first so that files in the
        project's templates directory take precedence. A file that does
        not compile is logged and skipped.
        """
        directories = []
        theme_dir = self._theme_dir()
        if theme_dir is not None:
            directories.append(theme_dir)
        templates_dir = self.config.get("templates_dir")
        if templates_dir:
            directories.append(Path(templates_dir))

        for directory in directories:
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*")):
                if not path.is_file() or path.suffix.lower() not in TEMPLATE_SUFFIXES:
                    continue
                relative = path.relative_to(directory)
                folders = relative.parts[:-1]
                if PARTIALS_FOLDER in folders:
                    continue
                name = path.name.split(".")[0]
                try:
                    template = self.env.get_template(relative.as_posix())
                except Exception as exc:
                    logger.error("Error compiling template %s: %s", path, exc)
                    continue
                render = JinjaRenderFunction(template)
                if LAYOUTS_FOLDER in folders:
                    self.registry.register_layout(name, render)
                else:
                    self.registry.register_template(name, render)

        logger.info(
            "Loaded %d templates and %d layouts",
            len(self.registry.template_names),
            len(self.registry.layout_names),
        )

    def register_template(self, name: str, render: RenderFunction) -> None:
        self.registry.register_template(name, render)

    def register_layout(self, name: str, render: RenderFunction) -> None:
        self.registry.register_layout(name, render)

    def resolve_template(self, name: str) -> RenderFunction:
        """Look a template up, falling back to the built-in default."""
        render = self.registry.get_template(name) or self._builtins.get(name)
        if render is None:
            logger.warning("Template '%s' not found, using default template", name)
            render = self._builtins[DEFAULT_TEMPLATE]
        return render

    def resolve_layout(self, name: str | None) -> RenderFunction:
        """Look a layout up, then ``default_layout``, then the built-in shell."""
        for candidate in (name, self.config.get("default_layout")):
            if candidate:
                render = self.registry.get_layout(candidate)
                if render is not None:
                    return render
        return self._shell

    def render(self, template_name: str, data: Mapping[str, Any]) -> str:
        """Render a document; failures yield an error document."""
        return self.render_result(template_name, data).html

    def render_result(self, template_name: str, data: Mapping[str, Any]) -> RenderResult:
        """Render ``template_name`` with ``data`` and wrap it in its layout.

        Args:
            template_name: Registered or built-in template name.
            data: Template data (``page`` or index keys, ``site``,
                ``collections``).

        Returns:
            RenderResult whose ``error`` is set when rendering raised.
        """
        page = data.get("page")
        layout_name = getattr(page, "layout", None) or data.get("layout")
        try:
            body = self.resolve_template(template_name)(data)
            html = self.resolve_layout(layout_name)({**data, "content": body})
        except Exception as exc:
            logger.error("Error rendering template '%s': %s", template_name, exc)
            return RenderResult(
                html=self.render_error(exc, data),
                error=f"{type(exc).__name__}: {exc}",
            )
        return RenderResult(html=html)

    def render_error(self, error: BaseException, data: Mapping[str, Any]) -> str:
        """Render the error document for a failed render.

        The traceback is included only when ``development`` is enabled.
        """
        details = None
        if self.config.get("development"):
            details = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        error_data = {
            "site": data.get("site"),
            "title": "Error",
            "message": str(error) or type(error).__name__,
            "traceback": details,
        }
        try:
            body = self._builtins[ERROR_TEMPLATE](error_data)
            return self._shell({**error_data, "content": body})
        except Exception as exc:
            logger.error("Error rendering error document: %s", exc)
            return (
                "<!DOCTYPE html><html><head><title>Error</title></head><body>"
                f"<h1>Error</h1><p>{escape_html(error_data['message'])}</p>"
                "</body></html>"
            )
