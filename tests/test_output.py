from datetime import datetime
from types import SimpleNamespace

import pytest

from sidegen.output import OutputPathError, OutputWriter, page_url


def test_page_url_default_and_index():
    assert page_url("hello", "posts", datetime(2024, 1, 1)) == "/hello/"
    assert page_url("index", "pages", datetime(2024, 1, 1)) == "/"
    assert page_url("index", "posts", datetime(2024, 1, 1), "/:collection/:slug/") == "/"


def test_page_url_permalink_tokens():
    date = datetime(2024, 7, 9)
    assert page_url("x", "posts", date, "/:collection/:year/:month/:day/:slug/") == (
        "/posts/2024/07/09/x/"
    )
    assert page_url("x", "posts", date, "blog//:slug") == "/blog/x/"


def test_output_paths(tmp_path):
    writer = OutputWriter(tmp_path)
    assert writer.output_path_for(SimpleNamespace(url="/")) == tmp_path / "index.html"
    assert writer.output_path_for(SimpleNamespace(url="/about/")) == (
        tmp_path / "about" / "index.html"
    )
    assert writer.output_path_for(SimpleNamespace(url="/posts/2024/x/")) == (
        tmp_path / "posts" / "2024" / "x" / "index.html"
    )
    assert writer.collection_path("posts") == tmp_path / "posts" / "index.html"
    assert writer.tag_path("Web Dev") == tmp_path / "tags" / "web-dev" / "index.html"
    assert writer.category_path("News & Notes") == (
        tmp_path / "categories" / "news-notes" / "index.html"
    )


def test_paths_outside_output_dir_are_rejected(tmp_path):
    writer = OutputWriter(tmp_path / "dist")
    with pytest.raises(OutputPathError):
        writer.collection_path("../escaped")
    with pytest.raises(OutputPathError):
        writer.collection_path(str(tmp_path / "outside"))
    with pytest.raises(OutputPathError):
        writer.output_path_for(SimpleNamespace(url="/../../etc/"))


def test_write_creates_directories_idempotently(tmp_path):
    writer = OutputWriter(tmp_path / "dist")
    target = tmp_path / "dist" / "a" / "b" / "index.html"
    writer.write(target, "<p>one</p>")
    writer.write(target, "<p>two</p>")
    assert target.read_text(encoding="utf-8") == "<p>two</p>"


def test_clean_empties_output(tmp_path):
    out = tmp_path / "dist"
    (out / "old").mkdir(parents=True)
    (out / "old" / "index.html").write_text("stale", encoding="utf-8")
    OutputWriter(out).clean()
    assert out.is_dir()
    assert list(out.iterdir()) == []
