"""SideGen static site generator.

Builds a static site from Markdown content with YAML frontmatter,
Jinja2 templates and an asset pipeline, and serves it locally with live
reload while files change.

The main entry point is the CLI module, which provides commands for
scaffolding projects, building, serving and checking content.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
