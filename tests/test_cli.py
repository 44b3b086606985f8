import json
import logging
import shutil
import subprocess
from datetime import datetime

import pytest
from click.testing import CliRunner

from sidegen import __version__
from sidegen.cli import cli

SKIP_ENV = {"SIDEGEN_SKIP_NPM_INSTALL": "1", "SIDEGEN_SKIP_GIT_INIT": "1"}


@pytest.fixture(autouse=True)
def reset_cli_logging():
    yield
    package_logger = logging.getLogger("sidegen")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_sidegen_cli", False):
            package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


def mock_prompts(monkeypatch, answers):
    responses = iter(answers)

    class MockQuestion:
        def ask(self):
            return next(responses)

    def prompt(*args, **kwargs):
        return MockQuestion()

    monkeypatch.setattr("sidegen.cli.questionary.select", prompt)
    monkeypatch.setattr("sidegen.cli.questionary.text", prompt)
    monkeypatch.setattr("sidegen.cli.questionary.confirm", prompt)


def test_version_option():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_new_scaffolds_project(tmp_path):
    runner = CliRunner()
    target = tmp_path / "mysite"
    result = runner.invoke(cli, ["new", str(target)], env=SKIP_ENV)
    assert result.exit_code == 0, result.output
    assert (target / "sidegen.yaml").exists()
    assert (target / "content" / "index.md").exists()
    assert (target / "content" / "posts" / "hello-world.md").exists()
    assert (target / "templates" / "post.html.jinja").exists()
    assert (target / "templates" / "layouts").is_dir()
    assert (target / ".gitignore").exists()
    assert not (target / "gitignore").exists()
    package_json = json.loads((target / "package.json").read_text(encoding="utf-8"))
    assert "tailwindcss" in package_json["devDependencies"]

    # refuses a non-empty directory
    result = runner.invoke(cli, ["new", str(target)], env=SKIP_ENV)
    assert result.exit_code != 0
    assert "non-empty" in result.output


def test_cli_build_scaffolded_site(monkeypatch, tmp_path):
    runner = CliRunner()
    project = tmp_path / "mysite"
    runner.invoke(cli, ["new", str(project)], env=SKIP_ENV)
    monkeypatch.setattr(shutil, "which", lambda cmd: None)
    monkeypatch.chdir(project)

    result = runner.invoke(cli, ["build"], catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert "Built 3 pages" in result.output
    assert (project / "dist" / "index.html").exists()
    assert (project / "dist" / "hello-world" / "index.html").exists()
    assert (project / "dist" / "posts" / "index.html").exists()
    assert (project / "dist" / "robots.txt").exists()


def test_cli_build_drafts_flag(monkeypatch, tmp_path):
    seen = {}

    def fake_build_site(config, include_drafts=None):
        seen["drafts"] = include_drafts
        from sidegen.build import BuildResult

        return BuildResult(pages=[], output_dir=config["output_dir"], collections={})

    monkeypatch.setattr("sidegen.build.build_site", fake_build_site)
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    runner.invoke(cli, ["build"], catch_exceptions=False)
    assert seen["drafts"] is None
    runner.invoke(cli, ["build", "--drafts"], catch_exceptions=False)
    assert seen["drafts"] is True


def test_cli_build_reports_fatal_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "Input directory not found" in result.output


def test_cli_build_reports_item_failures(tmp_path, monkeypatch):
    (tmp_path / "content").mkdir()
    (tmp_path / "content" / "ok.md").write_text("---\ntitle: Ok\n---\nFine", encoding="utf-8")
    (tmp_path / "content" / "bad.md").write_bytes(b"\xff\xfe")
    monkeypatch.setattr(shutil, "which", lambda cmd: None)
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 0
    assert "[content]" in result.output
    assert "bad.md" in result.output


def test_cli_invalid_config(tmp_path, monkeypatch):
    (tmp_path / "sidegen.yaml").write_text("title: ''\nexcerpt_length: -1\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Invalid configuration:" in result.output
    assert "Site title is required" in result.output
    assert "excerpt_length must be a positive integer" in result.output


def test_cli_serve_passes_options(monkeypatch, tmp_path):
    called = {}

    class DummyServer:
        def __init__(self, root, http_port=None, ws_port=None, include_drafts=None):
            called.update(
                root=root, port=http_port, ws_port=ws_port, include_drafts=include_drafts
            )

        def start(self):
            called["started"] = True

    monkeypatch.setattr("sidegen.server.DevServer", DummyServer)
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(
        cli, ["serve", "--drafts", "--port", "5050", "--ws-port", "5051"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert called["port"] == 5050
    assert called["ws_port"] == 5051
    assert called["include_drafts"] is True
    assert called["started"]


def test_cli_check_reports_problems(tmp_path, monkeypatch):
    content = tmp_path / "content"
    content.mkdir()
    (content / "good.md").write_text("---\ntitle: Good\n---\nBody", encoding="utf-8")
    (content / "bad.md").write_text("No frontmatter", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli, ["check"])
    assert result.exit_code == 1
    assert "bad.md: Missing title in frontmatter" in result.output
    assert "Checked 2 files, 1 with problems" in result.output

    (content / "bad.md").unlink()
    result = CliRunner().invoke(cli, ["check"])
    assert result.exit_code == 0
    assert "Checked 1 files, 0 with problems" in result.output


def test_verbose_enables_debug_logging(tmp_path, monkeypatch):
    (tmp_path / "content").mkdir()
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["--verbose", "check"])
    assert result.exit_code == 0
    assert logging.getLogger("sidegen").level == logging.DEBUG


def test_md_command_creates_file(tmp_path, monkeypatch):
    (tmp_path / "content" / "posts").mkdir(parents=True)
    monkeypatch.chdir(tmp_path)
    mock_prompts(monkeypatch, ["posts", "My New Post", True])

    result = CliRunner().invoke(cli, ["md"], catch_exceptions=False)
    assert result.exit_code == 0
    created = tmp_path / "content" / "posts" / "my-new-post.md"
    assert created.exists()
    text = created.read_text(encoding="utf-8")
    assert "title: My New Post" in text
    assert f"date: '{datetime.now():%Y-%m-%d}'" in text
    assert "draft: true" in text
    assert "# My New Post" in text
    assert "Created content/posts/my-new-post.md" in result.output


def test_md_command_root_folder(tmp_path, monkeypatch):
    (tmp_path / "content").mkdir()
    monkeypatch.chdir(tmp_path)
    mock_prompts(monkeypatch, [". (root)", "Contact", False])

    result = CliRunner().invoke(cli, ["md"], catch_exceptions=False)
    assert result.exit_code == 0
    text = (tmp_path / "content" / "contact.md").read_text(encoding="utf-8")
    assert "draft: false" in text


def test_md_command_duplicate_detection(tmp_path, monkeypatch):
    posts = tmp_path / "content" / "posts"
    posts.mkdir(parents=True)
    (posts / "existing-post.md").write_text("# Existing", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    mock_prompts(monkeypatch, ["posts", "Existing Post", True])

    result = CliRunner().invoke(cli, ["md"])
    assert result.exit_code != 0
    assert "File already exists" in result.output


def test_md_command_no_content_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["md"])
    assert result.exit_code != 0
    assert "No content/ directory found" in result.output


def test_md_command_cancelled(tmp_path, monkeypatch):
    (tmp_path / "content").mkdir()
    monkeypatch.chdir(tmp_path)
    mock_prompts(monkeypatch, [None])
    result = CliRunner().invoke(cli, ["md"])
    assert result.exit_code == 1


def test_get_content_folders(tmp_path):
    from sidegen.cli import _get_content_folders

    (tmp_path / "posts").mkdir()
    (tmp_path / "docs").mkdir()
    (tmp_path / "_drafts").mkdir()
    (tmp_path / ".hidden").mkdir()
    (tmp_path / "file.md").write_text("x", encoding="utf-8")
    assert _get_content_folders(tmp_path) == [". (root)", "docs", "posts"]


def test_try_npm_install(monkeypatch, tmp_path):
    from sidegen.cli import _try_npm_install

    called = {}
    monkeypatch.setenv("SIDEGEN_SKIP_NPM_INSTALL", "0")
    monkeypatch.setattr("sidegen.cli.shutil.which", lambda cmd: "/usr/bin/npm")

    def fake_run(cmd, cwd=None, check=None, capture_output=None):
        called["cmd"] = cmd
        called["cwd"] = cwd
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr("sidegen.cli.subprocess.run", fake_run)
    _try_npm_install(tmp_path)
    assert called["cmd"] == ["/usr/bin/npm", "install"]
    assert called["cwd"] == tmp_path


def test_try_npm_install_failure_is_logged(monkeypatch, tmp_path, caplog):
    from sidegen.cli import _try_npm_install

    monkeypatch.setenv("SIDEGEN_SKIP_NPM_INSTALL", "0")
    monkeypatch.setattr("sidegen.cli.shutil.which", lambda cmd: "/usr/bin/npm")

    def fake_run(cmd, cwd=None, check=None, capture_output=None):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr("sidegen.cli.subprocess.run", fake_run)
    _try_npm_install(tmp_path)
    assert "npm install failed" in caplog.text


def test_try_git_init_skipped(monkeypatch, tmp_path):
    from sidegen.cli import _try_git_init

    monkeypatch.setenv("SIDEGEN_SKIP_GIT_INIT", "1")

    def fail_which(cmd):
        raise AssertionError("git lookup should be skipped")

    monkeypatch.setattr("sidegen.cli.shutil.which", fail_which)
    _try_git_init(tmp_path)


def test_try_git_init_missing_git(monkeypatch, tmp_path):
    from sidegen.cli import _try_git_init

    monkeypatch.delenv("SIDEGEN_SKIP_GIT_INIT", raising=False)
    monkeypatch.setattr("sidegen.cli.shutil.which", lambda cmd: None)
    _try_git_init(tmp_path)
    assert not (tmp_path / ".git").exists()


def test_module_main_entrypoint():
    from sidegen.__main__ import main

    assert callable(main)
