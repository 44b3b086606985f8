"""Command-line interface for SideGen.

This module defines the CLI commands using the Click framework.

Commands:
- new: Scaffold a new SideGen project.
- build: Build the site into the output directory.
- serve: Run the development server with live reload.
- check: Validate every content file.
- md: Create a new Markdown file interactively.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from datetime import datetime
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .config import ConfigError, load_config
from .content import FileContentLoader
from .markdown import MarkdownProcessor
from .utils import slugify

_SCAFFOLD_DIR = Path(__file__).parent / "scaffold"
_RENAMED_SCAFFOLD_FILES = {"gitignore": ".gitignore"}
_ROOT_CHOICE = ". (root)"
_PACKAGE_JSON = {
    "private": True,
    "scripts": {
        "build:css": "tailwindcss -i assets/css/site.css -o dist/assets/css/site.css --minify",
    },
    "devDependencies": {"tailwindcss": "^3.4.13"},
}

PROMPT_STYLE = questionary.Style(
    [
        ("qmark", "fg:green bold"),
        ("question", "bold"),
        ("answer", "fg:green"),
        ("pointer", "fg:green bold"),
        ("highlighted", "fg:green bold"),
    ]
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send ``sidegen`` log records to stderr (DEBUG with ``--verbose``)."""
    package_logger = logging.getLogger("sidegen")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_sidegen_cli", False):
            package_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler._sidegen_cli = True
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@click.group()
@click.version_option(version=__version__, prog_name="sidegen")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """SideGen static site generator."""
    setup_logging(verbose)


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new SideGen project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New SideGen site created at {target}")


def _load_project_config(project_root: Path):
    try:
        return load_config(project_root)
    except ConfigError as exc:
        click.echo(click.style("Invalid configuration:", fg="red", bold=True), err=True)
        for error in exc.errors:
            click.echo(f"  - {error}", err=True)
        raise SystemExit(1) from None


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
def build(drafts: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import BuildError, build_site

    config = _load_project_config(project_root)
    try:
        result = build_site(config, include_drafts=True if drafts else None)
    except BuildError as exc:
        try:
            shown = exc.source_path.resolve().relative_to(project_root.resolve())
        except ValueError:
            shown = exc.source_path
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Path: {shown}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    for failure in result.failures:
        click.echo(
            click.style(f"  [{failure.stage}] {failure.source}: {failure.message}", fg="yellow"),
            err=True,
        )
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides dev_server.port)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides dev_server.ws_port)",
)
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    _load_project_config(project_root)
    server = DevServer(
        project_root, http_port=port, ws_port=ws_port, include_drafts=True if drafts else None
    )
    server.start()


@cli.command()
def check():
    """Validate every content file and report problems."""
    project_root = Path.cwd()
    config = _load_project_config(project_root)
    processor = MarkdownProcessor.from_config(config)
    loader = FileContentLoader(Path(config["input_dir"]))
    try:
        files = loader.iter_files()
    except OSError as exc:
        raise click.ClickException(str(exc)) from None

    invalid = 0
    for path in files:
        rel_path = path.relative_to(config["input_dir"])
        try:
            result = processor.validate(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            invalid += 1
            click.echo(click.style(f"{rel_path}: {exc}", fg="red"))
            continue
        if not result.is_valid:
            invalid += 1
            for error in result.errors:
                click.echo(click.style(f"{rel_path}: {error}", fg="red"))

    click.echo(f"Checked {len(files)} files, {invalid} with problems")
    if invalid:
        raise SystemExit(1)


@cli.command()
def md():
    """Create a new Markdown file interactively."""
    config = _load_project_config(Path.cwd())
    project_root = Path(config["project_root"])
    input_dir = Path(config["input_dir"])

    if not input_dir.exists():
        raise click.ClickException(
            f"No {input_dir.name}/ directory found. Run this command from a SideGen project root."
        )

    folder = _ask(
        questionary.select(
            "Select collection:", choices=_get_content_folders(input_dir), style=PROMPT_STYLE
        )
    )
    title = _ask(
        questionary.text(
            "Title:",
            validate=lambda text: bool(text.strip()) or "Title cannot be empty",
            style=PROMPT_STYLE,
        )
    ).strip()
    draft = _ask(questionary.confirm("Mark as draft?", default=True, style=PROMPT_STYLE))

    slug = slugify(title)
    if not slug:
        raise click.ClickException(f"Cannot derive a file name from title: {title!r}")

    target_dir = input_dir if folder == _ROOT_CHOICE else input_dir / folder
    target_path = target_dir / f"{slug}.md"
    shown_path = target_path.relative_to(project_root)
    if target_path.exists():
        raise click.ClickException(f"File already exists: {shown_path}")

    frontmatter = yaml.safe_dump(
        {
            "title": title,
            "date": datetime.now().strftime("%Y-%m-%d"),
            "draft": bool(draft),
            "tags": [],
        },
        sort_keys=False,
    )
    target_dir.mkdir(parents=True, exist_ok=True)
    target_path.write_text(f"---\n{frontmatter}---\n\n# {title}\n\n", encoding="utf-8")

    click.echo(f"Created {shown_path}")


def _ask(question):
    """Ask a questionary prompt, aborting the command if it is cancelled."""
    answer = question.ask()
    if answer is None:
        raise click.Abort()
    return answer


def _get_content_folders(input_dir: Path) -> list[str]:
    """List top-level content folders (collections), root option first."""
    folders = sorted(
        path.name
        for path in input_dir.iterdir()
        if path.is_dir() and not path.name.startswith((".", "_"))
    )
    folders.insert(0, _ROOT_CHOICE)
    return folders


def main():
    cli()


def _scaffold(root: Path) -> None:
    """Copy the starter project into ``root`` and run the optional setup tools."""
    for source in sorted(_SCAFFOLD_DIR.rglob("*")):
        if not source.is_file():
            continue
        relative = source.relative_to(_SCAFFOLD_DIR)
        dest = root / relative.with_name(_RENAMED_SCAFFOLD_FILES.get(relative.name, relative.name))
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
    (root / "templates" / "layouts").mkdir(parents=True, exist_ok=True)

    package_json = dict(_PACKAGE_JSON, name=slugify(root.name) or "sidegen-site")
    (root / "package.json").write_text(json.dumps(package_json, indent=2) + "\n", encoding="utf-8")

    _try_npm_install(root)
    _try_git_init(root)


def _run_setup_tool(root: Path, tool: str, *args: str) -> None:
    # SIDEGEN_SKIP_<TOOL>_<ARG> turns a step off, e.g. SIDEGEN_SKIP_GIT_INIT=1
    skip_var = "_".join(["SIDEGEN_SKIP", tool.upper(), *(arg.upper() for arg in args)])
    if os.environ.get(skip_var) == "1":
        return
    executable = shutil.which(tool)
    if not executable:
        logger.debug("%s not found, skipping %s %s", tool, tool, " ".join(args))
        return
    try:
        subprocess.run([executable, *args], cwd=root, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("%s %s failed: %s", tool, " ".join(args), exc)


def _try_git_init(root: Path) -> None:
    _run_setup_tool(root, "git", "init")


def _try_npm_install(root: Path) -> None:
    _run_setup_tool(root, "npm", "install")
