"""Configuration loading for SideGen.

Site configuration lives in ``sidegen.yaml`` (or ``sidegen.yml`` /
``sidegen.json``) at the project root. User values are deep-merged over
DEFAULT_CONFIG, validated, and directory options are resolved against
the project root. The rest of the package consumes the resulting plain
dictionary and never validates it again.

Key functions:
- load_config: Read, merge, validate and normalize the project config.
- make_config: Same as load_config for an in-memory mapping.
- validate_config: Collect every validation problem in a config mapping.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("sidegen.yaml", "sidegen.yml", "sidegen.json")
DIRECTORY_KEYS = (
    "input_dir",
    "output_dir",
    "templates_dir",
    "themes_dir",
    "assets_dir",
    "public_dir",
)

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "My SideGen Site",
    "description": "A static site built with SideGen",
    "author": "",
    "base_url": "",
    "language": "en",
    "input_dir": "content",
    "output_dir": "dist",
    "templates_dir": "templates",
    "themes_dir": "themes",
    "assets_dir": "assets",
    "public_dir": "public",
    "default_template": "default",
    "default_layout": "default",
    "excerpt_length": 200,
    "date_format": "YYYY-MM-DD",
    "minify_html": False,
    "minify_css": True,
    "minify_js": False,
    "optimize_images": True,
    "generate_sitemap": True,
    "generate_rss": True,
    "development": False,
    "dev_server": {
        "port": 3000,
        "ws_port": None,
        "host": "localhost",
        "open": False,
        "livereload": True,
    },
    "seo": {
        "generate_meta_tags": True,
        "generate_open_graph": True,
        "generate_twitter_card": True,
    },
    "collections": {},
    "markdown": {
        "gfm": True,
        "frontmatter": True,
        "highlight": True,
        "toc": True,
        "anchor_links": True,
    },
    "theme": {
        "name": "default",
        "custom_css": [],
        "custom_js": [],
    },
    "plugins": [],
}


class ConfigError(ValueError):
    """Configuration failed validation.

    Attributes:
        errors: Every validation message found, in check order.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Configuration validation failed:\n" + "\n".join(self.errors)
        )


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``.

    Nested mappings merge recursively; lists and scalars replace.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: dict[str, Any]) -> list[str]:
    """Return a list of validation problems (empty when valid)."""
    errors: list[str] = []

    if not config.get("title"):
        errors.append("Site title is required")
    if not config.get("input_dir"):
        errors.append("Input directory is required")
    if not config.get("output_dir"):
        errors.append("Output directory is required")

    for key in DIRECTORY_KEYS:
        value = config.get(key)
        if value is not None and not isinstance(value, (str, Path)):
            errors.append(f"{key} must be a string")

    excerpt_length = config.get("excerpt_length")
    if (
        not isinstance(excerpt_length, int)
        or isinstance(excerpt_length, bool)
        or excerpt_length < 1
    ):
        errors.append("excerpt_length must be a positive integer")

    collections = config.get("collections") or {}
    if not isinstance(collections, dict):
        errors.append("collections must be a mapping")
        collections = {}
    for name, options in collections.items():
        if not isinstance(options, dict):
            errors.append(f"Collection '{name}' must be a mapping")
            continue
        if not options.get("pattern"):
            errors.append(f"Collection '{name}' must have a pattern")
        sort_order = options.get("sort_order")
        if sort_order is not None and sort_order not in ("asc", "desc"):
            errors.append(f"Collection '{name}' sort_order must be 'asc' or 'desc'")

    dev_server = config.get("dev_server") or {}
    port = dev_server.get("port")
    if port is not None and (
        not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535
    ):
        errors.append("Dev server port must be an integer between 1 and 65535")
    ws_port = dev_server.get("ws_port")
    if ws_port is not None and (
        not isinstance(ws_port, int)
        or isinstance(ws_port, bool)
        or not 1 <= ws_port <= 65535
    ):
        errors.append("Dev server ws_port must be an integer between 1 and 65535")

    return errors


def make_config(
    overrides: dict[str, Any] | None = None, project_root: Path | None = None
) -> dict[str, Any]:
    """Merge overrides over the defaults, validate and normalize.

    Args:
        overrides: User configuration values.
        project_root: Directory relative paths are resolved against
            (defaults to the current working directory).

    Returns:
        Normalized configuration with directory options as absolute Paths.

    Raises:
        ConfigError: If validation fails.
    """
    root = (project_root or Path.cwd()).resolve()
    config = merge_config(DEFAULT_CONFIG, overrides or {})
    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)

    for key in DIRECTORY_KEYS:
        config[key] = (root / config[key]).resolve()
    config["project_root"] = root
    config["base_url"] = str(config.get("base_url") or "").rstrip("/")
    return config


def find_config_file(project_root: Path) -> Path | None:
    """Return the first config file present in the project root."""
    for name in CONFIG_FILENAMES:
        candidate = project_root / name
        if candidate.exists():
            return candidate
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a mapping.

    Raises:
        ConfigError: If the file cannot be parsed or is not a mapping.
    """
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            loaded = json.loads(text)
        else:
            loaded = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError([f"Could not parse {path.name}: {exc}"]) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError([f"{path.name} must contain a mapping"])
    return loaded


def load_config(
    project_root: Path, config_path: Path | None = None
) -> dict[str, Any]:
    """Load site configuration for a project.

    Args:
        project_root: Root directory of the project.
        config_path: Explicit config file (overrides discovery).

    Returns:
        Normalized configuration dictionary.

    Raises:
        ConfigError: If the file is unreadable as config or fails validation.
    """
    path = config_path or find_config_file(project_root)
    user_config: dict[str, Any] = {}
    if path is not None:
        user_config = read_config_file(path)
        logger.info("Loaded config from %s", path)
    config = make_config(user_config, project_root)
    config["config_path"] = path
    return config
