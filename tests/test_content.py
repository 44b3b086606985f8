import logging
from datetime import datetime
from pathlib import Path, PurePath

import pytest

from sidegen.collections import PageCollection, build_taxonomy, organize_collections, sort_pages
from sidegen.config import make_config
from sidegen.content import (
    ContentCatalog,
    DefaultPageBuilder,
    FileContentLoader,
    Page,
    SiteContext,
    determine_collection,
    generate_page_id,
    generate_slug,
    parse_draft,
)
from sidegen.extractors import ReadingTime
from sidegen.protocols import ContentLoader, PageBuilder


def write_files(root: Path, files: dict) -> None:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(text, bytes):
            path.write_bytes(text)
        else:
            path.write_text(text, encoding="utf-8")


def make_page(**overrides) -> Page:
    values = dict(
        id="p",
        source_path=Path("/tmp/p.md"),
        relative_path=PurePath("p.md"),
        slug="p",
        title="P",
        content="",
        html="",
        frontmatter={},
        excerpt="",
        word_count=0,
        reading_time=ReadingTime(0, 0, "0 min read"),
        toc=[],
        template="default",
        layout="default",
        date=datetime(2024, 1, 1),
        draft=False,
    )
    values.update(overrides)
    return Page(**values)


def test_generate_page_id():
    assert generate_page_id(PurePath("posts/hello-world.md")) == "posts_hello_world_md"


def test_generate_slug_precedence():
    rel = PurePath("posts/My File.md")
    assert generate_slug({"slug": "Custom Slug", "title": "T"}, rel) == "custom-slug"
    assert generate_slug({"title": "Hello World"}, rel) == "hello-world"
    assert generate_slug({}, rel) == "my-file"
    assert generate_slug({"title": "!!!"}, rel) == "my-file"
    assert generate_slug({}, PurePath("!!!.md")) == "____md"


def test_determine_collection():
    assert determine_collection(PurePath("posts/a.md"), {}) == "posts"
    assert determine_collection(PurePath("posts/a.md"), {"collection": "notes"}) == "notes"
    assert determine_collection(PurePath("a.md"), {}) == "pages"
    assert determine_collection(PurePath("a.md"), {"collection": "../escaped"}) == "escaped"
    assert determine_collection(PurePath("a.md"), {"collection": "/abs/dir"}) == "absdir"
    assert determine_collection(PurePath("posts/a.md"), {"collection": "//"}) == "posts"


def test_parse_draft():
    assert parse_draft(True)
    assert parse_draft("yes")
    assert parse_draft("True")
    assert not parse_draft("no")
    assert not parse_draft(None)


def test_loader_lists_markdown_sorted(tmp_path):
    content = tmp_path / "content"
    write_files(
        content,
        {"b.md": "b", "a.markdown": "a", "sub/c.mdx": "c", "notes.txt": "x", "img.png": "x"},
    )
    files = FileContentLoader(content).iter_files()
    assert [p.relative_to(content).as_posix() for p in files] == [
        "a.markdown",
        "b.md",
        "sub/c.mdx",
    ]


def test_loader_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        FileContentLoader(tmp_path / "missing").iter_files()
    (tmp_path / "file").write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        FileContentLoader(tmp_path / "file").iter_files()


def test_page_builder_fields(tmp_path):
    write_files(
        tmp_path / "content",
        {
            "posts/hello.md": (
                "---\ntitle: Hello World\ndate: 2024-03-05\ntags: a, b\n"
                "categories: [news]\ndraft: 'yes'\nauthor: Ann\n---\n# Hi\n\nBody text"
            )
        },
    )
    config = make_config(
        {"collections": {"posts": {"pattern": "posts/*.md", "template": "post"}}}, tmp_path
    )
    builder = DefaultPageBuilder(config["input_dir"], config)
    page = builder.build(config["input_dir"] / "posts" / "hello.md")
    assert page.id == "posts_hello_md"
    assert page.slug == "hello-world"
    assert page.title == "Hello World"
    assert page.collection == "posts"
    assert page.template == "post"
    assert page.layout == "default"
    assert page.date == datetime(2024, 3, 5)
    assert page.draft is True
    assert page.tags == ["a", "b"]
    assert page.categories == ["news"]
    assert page.author == "Ann"
    assert page.url == "/hello-world/"
    assert page.relative_path == PurePath("posts/hello.md")
    assert '<h1 id="hi">' in page.html


def test_page_builder_frontmatter_template_wins(tmp_path):
    write_files(
        tmp_path / "content",
        {"posts/x.md": "---\ntemplate: special\nlayout: wide\n---\nBody"},
    )
    config = make_config(
        {"collections": {"posts": {"pattern": "posts/*.md", "template": "post"}}}, tmp_path
    )
    page = DefaultPageBuilder(config["input_dir"], config).build(
        config["input_dir"] / "posts" / "x.md"
    )
    assert page.template == "special"
    assert page.layout == "wide"
    assert page.title == "x"


def test_page_builder_permalink(tmp_path):
    write_files(tmp_path / "content", {"posts/x.md": "---\ndate: 2024-07-09\n---\nBody"})
    config = make_config(
        {
            "collections": {
                "posts": {"pattern": "posts/*.md", "permalink": "/:collection/:year/:month/:slug/"}
            }
        },
        tmp_path,
    )
    page = DefaultPageBuilder(config["input_dir"], config).build(
        config["input_dir"] / "posts" / "x.md"
    )
    assert page.url == "/posts/2024/07/x/"


def test_page_builder_bad_date_falls_back_to_mtime(tmp_path, caplog):
    write_files(tmp_path / "content", {"a.md": "---\ndate: someday\n---\nBody"})
    config = make_config({}, tmp_path)
    path = config["input_dir"] / "a.md"
    with caplog.at_level(logging.WARNING, logger="sidegen.content"):
        page = DefaultPageBuilder(config["input_dir"], config).build(path)
    assert page.date == datetime.fromtimestamp(path.stat().st_mtime)
    assert "Unrecognized date" in caplog.text


def test_catalog_discovers_and_organizes(tmp_path):
    write_files(
        tmp_path / "content",
        {
            "index.md": "---\ntitle: Home\nslug: index\n---\nWelcome",
            "about.md": "---\ntitle: About\n---\nAbout us",
            "posts/old.md": "---\ntitle: Old\ndate: 2024-01-01\n---\nOld post",
            "posts/new.md": "---\ntitle: New\ndate: 2024-02-01\n---\nNew post",
            "posts/draft.md": "---\ntitle: Draft\ndate: 2024-03-01\ndraft: true\n---\nWip",
        },
    )
    config = make_config({}, tmp_path)
    catalog = ContentCatalog(config)
    pages = catalog.discover()

    assert len(pages) == 5
    assert set(catalog.pages) == {
        "index_md",
        "about_md",
        "posts_old_md",
        "posts_new_md",
        "posts_draft_md",
    }
    assert [p.title for p in catalog.collections["posts"]] == ["Draft", "New", "Old"]
    assert {p.title for p in catalog.collections["pages"]} == {"Home", "About"}
    assert catalog.pages["index_md"].url == "/"
    assert catalog.failures == []


def test_catalog_isolates_broken_files(tmp_path, caplog):
    write_files(
        tmp_path / "content",
        {"good.md": "---\ntitle: Good\n---\nFine", "bad.md": b"\xff\xfe\x00broken"},
    )
    config = make_config({}, tmp_path)
    catalog = ContentCatalog(config)
    with caplog.at_level(logging.ERROR, logger="sidegen.content"):
        pages = catalog.discover()
    assert [p.title for p in pages] == ["Good"]
    assert len(catalog.failures) == 1
    failure = catalog.failures[0]
    assert failure.path.name == "bad.md"
    assert not failure.ok
    assert failure.error.startswith("UnicodeDecodeError")
    assert "bad.md" in caplog.text


def test_catalog_uses_injected_components(tmp_path):
    config = make_config({}, tmp_path)

    class FakeLoader:
        def iter_files(self):
            return [Path("one.md"), Path("two.md")]

    class FakeBuilder:
        def build(self, path):
            if path.name == "two.md":
                raise ValueError("nope")
            return make_page(id=path.stem, title=path.stem)

    assert isinstance(FakeLoader(), ContentLoader)
    assert isinstance(FakeBuilder(), PageBuilder)

    catalog = ContentCatalog(config, content_loader=FakeLoader(), page_builder=FakeBuilder())
    pages = catalog.discover()
    assert [p.id for p in pages] == ["one"]
    assert catalog.failures[0].error == "ValueError: nope"


def test_sort_pages_missing_values_last():
    a = make_page(id="a", frontmatter={"order": 2})
    b = make_page(id="b", frontmatter={})
    c = make_page(id="c", frontmatter={"order": 1})
    assert [p.id for p in sort_pages([a, b, c], "order", "asc")] == ["c", "a", "b"]
    assert [p.id for p in sort_pages([a, b, c], "order", "desc")] == ["a", "c", "b"]


def test_sort_pages_by_title_case_insensitive():
    pages = [make_page(id="1", title="beta"), make_page(id="2", title="Alpha")]
    assert [p.title for p in sort_pages(pages, "title", "asc")] == ["Alpha", "beta"]


def test_organize_collections_with_settings():
    pages = [
        make_page(id="1", title="B", collection="docs"),
        make_page(id="2", title="A", collection="docs"),
        make_page(id="3", title="Home"),
    ]
    grouped = organize_collections(pages, {"docs": {"sort_by": "title", "sort_order": "asc"}})
    assert list(grouped) == ["docs", "pages"]
    assert [p.title for p in grouped["docs"]] == ["A", "B"]


def test_every_page_in_exactly_one_collection():
    pages = [make_page(id=str(i), collection=name) for i, name in enumerate("xyxz")]
    grouped = organize_collections(pages)
    members = [p.id for group in grouped.values() for p in group]
    assert sorted(members) == sorted(p.id for p in pages)


def test_build_taxonomy():
    a = make_page(id="a", tags=["python", "web"])
    b = make_page(id="b", tags=["python"])
    index = build_taxonomy([a, b], "tags")
    assert [p.id for p in index["python"]] == ["a", "b"]
    assert [p.id for p in index["web"]] == ["a"]


def test_page_collection_helpers():
    pages = PageCollection(
        [
            make_page(id="a", collection="posts", tags=["x"], date=datetime(2024, 1, 1)),
            make_page(id="b", collection="posts", draft=True, date=datetime(2024, 3, 1)),
            make_page(id="c", categories=["news"], date=datetime(2024, 2, 1)),
        ]
    )
    assert len(pages.collection("posts")) == 2
    assert [p.id for p in pages.with_tag("x")] == ["a"]
    assert [p.id for p in pages.in_category("news")] == ["c"]
    assert [p.id for p in pages.drafts()] == ["b"]
    assert [p.id for p in pages.published()] == ["a", "c"]
    assert [p.id for p in pages.latest(2)] == ["b", "c"]
    assert pages[0].id == "a"


def test_site_context_from_config(tmp_path):
    config = make_config({"title": "Site", "author": "Me"}, tmp_path)
    page = make_page()
    site = SiteContext.from_config(config, [page], {"pages": [page]}, datetime(2024, 1, 1))
    assert site.title == "Site"
    assert site.author == "Me"
    assert site.language == "en"
    assert list(site.pages) == [page]
    assert list(site.collections["pages"]) == [page]
    assert site.collections["pages"].latest(1)[0] is page
    assert site.build_time == datetime(2024, 1, 1)
