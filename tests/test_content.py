"""
Metadata parsing, resolution and output path tests
"""

import datetime as dt
from pathlib import Path, PurePosixPath

import pytest

from pagong.content import (
    FileTimes,
    Metadata,
    first_available,
    load_entry,
    output_path_for,
    parse_list,
    parse_meta_block,
    parse_meta_date,
    resolve_metadata,
    slugify,
)
from pagong.errors import IoError, MetadataParseError

NOW = dt.datetime(2024, 5, 1, 12, 0)


def resolve(meta, **overrides):
    options = dict(
        source=Path("/site/content/blog/hello.md"),
        name="hello",
        parent_name="blog",
        times=FileTimes(),
        now=NOW,
        first_heading=lambda: None,
        content_root=Path("/site/content"),
    )
    options.update(overrides)
    return resolve_metadata(meta, **options)


class TestMetaBlock:
    """Test splitting the ```meta block off a document"""

    def test_key_value_pairs(self):
        """Both '=' and ':' separate keys from values"""
        meta, body = parse_meta_block('```meta\ntitle = "Hi"\ndate: 2020-02-20\n```\n# Body\n')
        assert meta == {"title": "Hi", "date": "2020-02-20"}
        assert body.strip() == "# Body"

    def test_first_separator_wins(self):
        """A value may contain the other separator"""
        meta, _ = parse_meta_block("```meta\nlink = https://example.org\n```\n")
        assert meta == {"link": "https://example.org"}

    def test_keys_are_lowercased_and_comments_skipped(self):
        meta, _ = parse_meta_block("```meta\n# note\n\nTitle = x\n```\n")
        assert meta == {"title": "x"}

    def test_no_block(self):
        """Documents without a leading meta block are returned unchanged"""
        text = "# Title\n\n```meta\ntitle = nope\n```\n"
        meta, body = parse_meta_block(text)
        assert meta == {}
        assert body == text

    def test_leading_blank_lines_and_bom(self):
        meta, _ = parse_meta_block("\ufeff\n\n```meta\ntitle = x\n```\n")
        assert meta == {"title": "x"}

    def test_unterminated_block(self):
        with pytest.raises(MetadataParseError):
            parse_meta_block("```meta\ntitle = x\n")

    def test_line_without_separator(self):
        with pytest.raises(MetadataParseError) as info:
            parse_meta_block("```meta\njust words\n```\n", Path("a.md"))
        assert info.value.path == Path("a.md")

    def test_empty_key(self):
        with pytest.raises(MetadataParseError):
            parse_meta_block("```meta\n= value\n```\n")


class TestHelpers:
    """Test small parsing helpers"""

    def test_slugify(self):
        assert slugify("Hello, World!") == "hello-world"
        assert slugify("snake_case name") == "snake-case-name"
        assert slugify("???") == "post"
        assert slugify("", fallback="uncategorized") == "uncategorized"

    def test_parse_list(self):
        assert parse_list("a, b,,c") == ["a", "b", "c"]
        assert parse_list("['x', \"y\"]") == ["x", "y"]

    def test_parse_meta_date(self):
        assert parse_meta_date("date", "2020-02-20") == dt.date(2020, 2, 20)

    @pytest.mark.parametrize("value", ["2020-2-20", "20-02-2020", "2020-02-30", "yesterday"])
    def test_parse_meta_date_rejects(self, value):
        with pytest.raises(MetadataParseError):
            parse_meta_date("date", value)

    def test_first_available_short_circuits(self):
        calls = []

        def tracked(value):
            def lookup():
                calls.append(value)
                return value

            return lookup

        assert first_available(tracked(None), tracked("b"), tracked("c")) == "b"
        assert calls == [None, "b"]
        assert first_available(lambda: None) is None


class TestResolveMetadata:
    """Test the fallback chains for every metadata field"""

    def test_explicit_values_win(self):
        metadata = resolve(
            {"title": "Hi", "date": "2020-02-20", "updated": "2021-01-01", "category": "Notes", "tags": "a, b"},
            first_heading=lambda: "Heading",
        )
        assert metadata.title == "Hi"
        assert metadata.date == dt.date(2020, 2, 20)
        assert metadata.updated == dt.date(2021, 1, 1)
        assert metadata.category == "Notes"
        assert metadata.tags == frozenset({"a", "b"})

    def test_title_falls_back_to_heading_then_name(self):
        assert resolve({}, first_heading=lambda: "Heading").title == "Heading"
        assert resolve({}).title == "hello"

    def test_heading_not_consulted_when_title_set(self):
        def explode():
            raise AssertionError("heading lookup should not run")

        assert resolve({"title": "Hi"}, first_heading=explode).title == "Hi"

    def test_dates_fall_back_to_file_times(self):
        times = FileTimes(created=dt.datetime(2019, 1, 2, 3, 4), modified=dt.datetime(2019, 6, 7, 8, 9))
        metadata = resolve({}, times=times)
        assert metadata.date == dt.date(2019, 1, 2)
        assert metadata.updated == dt.date(2019, 6, 7)

    def test_dates_fall_back_to_now(self):
        metadata = resolve({})
        assert metadata.date == NOW.date()
        assert metadata.updated == NOW.date()

    def test_updated_falls_back_to_date(self):
        metadata = resolve({"date": "2020-02-20"})
        assert metadata.updated == dt.date(2020, 2, 20)

    def test_created_and_modified_aliases(self):
        metadata = resolve({"created": "2020-01-01", "modified": "2020-03-03"})
        assert metadata.date == dt.date(2020, 1, 1)
        assert metadata.updated == dt.date(2020, 3, 3)
        assert metadata.explicit("date") == "2020-01-01"

    def test_category_falls_back_to_parent(self):
        assert resolve({}).category == "blog"
        assert resolve({}, parent_name="").category == ""

    def test_invalid_date(self):
        with pytest.raises(MetadataParseError):
            resolve({"date": "02/20/2020"})

    def test_shadowed_alias_still_validated(self):
        """A malformed alias fails even when the canonical key is valid"""
        with pytest.raises(MetadataParseError):
            resolve({"updated": "2020-01-01", "modified": "garbage"})
        with pytest.raises(MetadataParseError):
            resolve({"date": "2020-01-01", "created": "soon"})

    def test_template_resolution(self):
        assert resolve({"template": "post.html"}).template == Path("/site/content/blog/post.html")
        assert resolve({"template": "/layout.html"}).template == Path("/site/content/layout.html")

    def test_path_may_not_escape(self):
        with pytest.raises(MetadataParseError):
            resolve({"path": "../outside.html"})

    def test_draft_flag(self):
        assert resolve({"draft": "yes"}).draft is True
        assert resolve({}).draft is False

    def test_lookup(self):
        metadata = resolve({"title": "Hi", "date": "2020-02-20", "tags": "b, a", "author": "Sam"})
        assert metadata.lookup("date") == "2020-02-20"
        assert metadata.lookup("tags") == "a, b"
        assert metadata.lookup("author") == "Sam"
        assert metadata.lookup("missing") == ""


class TestOutputPath:
    """Test where entries land in the output directory"""

    def metadata(self, **raw):
        return Metadata(
            title="t",
            date=dt.date(2020, 1, 1),
            updated=dt.date(2020, 1, 1),
            category=raw.get("category", ""),
            path=raw.get("path"),
            raw=raw,
        )

    def test_plain_post(self):
        path = output_path_for(PurePosixPath("blog/Hello World.md"), self.metadata())
        assert path == PurePosixPath("blog/hello-world/index.html")

    def test_index_page(self):
        assert output_path_for(PurePosixPath("index.md"), self.metadata()) == PurePosixPath("index.html")
        assert output_path_for(PurePosixPath("blog/index.md"), self.metadata()) == PurePosixPath("blog/index.html")

    def test_folder_post(self):
        path = output_path_for(PurePosixPath("blog/trip/post.md"), self.metadata())
        assert path == PurePosixPath("blog/trip/index.html")

    def test_explicit_category(self):
        path = output_path_for(PurePosixPath("blog/hello.md"), self.metadata(category="Travel Notes"))
        assert path == PurePosixPath("travel-notes/hello/index.html")

    def test_path_override(self):
        assert output_path_for(PurePosixPath("a.md"), self.metadata(path="/about")) == PurePosixPath(
            "about/index.html"
        )
        assert output_path_for(PurePosixPath("a.md"), self.metadata(path="x/y.html")) == PurePosixPath("x/y.html")

    def test_generated_extension(self):
        path = output_path_for(PurePosixPath("hello.md"), self.metadata(), "htm")
        assert path == PurePosixPath("hello/index.htm")


class TestLoadEntry:
    """Test reading a single source file"""

    def test_load(self, tmp_path):
        source = tmp_path / "blog" / "hello.md"
        source.parent.mkdir()
        source.write_text('```meta\ntitle = "Hi"\ndate = 2020-02-20\n```\n# Greeting\n\nBody text.\n')
        entry = load_entry(source, tmp_path, NOW)
        assert entry.metadata.title == "Hi"
        assert entry.metadata.category == "blog"
        assert entry.output_path == PurePosixPath("blog/hello/index.html")
        assert '<h1 id="greeting">Greeting</h1>' in entry.html
        assert entry.headings[0].text == "Greeting"

    def test_title_from_first_heading(self, tmp_path):
        source = tmp_path / "page.md"
        source.write_text("Intro paragraph.\n\n## First *steps*\n\n# Later\n")
        assert load_entry(source, tmp_path, NOW).metadata.title == "First steps"

    def test_folder_post_category(self, tmp_path):
        source = tmp_path / "blog" / "trip" / "post.md"
        source.parent.mkdir(parents=True)
        source.write_text("text\n")
        entry = load_entry(source, tmp_path, NOW)
        assert entry.is_folder_post
        assert entry.metadata.title == "trip"
        assert entry.metadata.category == "blog"

    def test_invalid_utf8(self, tmp_path):
        source = tmp_path / "bad.md"
        source.write_bytes(b"\xff\xfe\xfa")
        with pytest.raises(IoError):
            load_entry(source, tmp_path, NOW)
