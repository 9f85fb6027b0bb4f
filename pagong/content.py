from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, TypeVar

from .errors import IoError, MetadataParseError
from .markup import render_markdown
from .toc import HeadingNode, build_heading_forest, iter_headings
from .utils import parse_bool, resolve_source_path

META_FENCE = "```meta"
FENCE = "```"
FOLDER_POST_NAME = "post.md"
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SLUG_SEP_RE = re.compile(r"[\W_]+", re.UNICODE)
KEY_ALIASES = {"created": "date", "modified": "updated"}
DATE_KEYS = {"date", "created", "updated", "modified"}

T = TypeVar("T")


def slugify(text: str, fallback: str = "post") -> str:
    text = SLUG_SEP_RE.sub("-", text.lower())
    text = text.strip("-")
    return text or fallback


def parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    else:
        items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_meta_block(text: str, path: Optional[Path] = None) -> tuple[dict[str, str], str]:
    """Split a leading ```meta fenced block off the markdown source.

    The block has to be the first element of the document; blank lines before
    it are fine, anything else means there is no meta block at all.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start == len(lines) or lines[start].strip() != META_FENCE:
        return {}, clean_text

    end = None
    for i in range(start + 1, len(lines)):
        if lines[i].strip() == FENCE:
            end = i
            break
    if end is None:
        raise MetadataParseError("Unterminated meta block.", path)

    meta: dict[str, str] = {}
    for number, line in enumerate(lines[start + 1 : end], start=start + 2):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        positions = [pos for pos in (line.find("="), line.find(":")) if pos >= 0]
        if not positions:
            raise MetadataParseError(f"Meta line {number} has no '=' or ':' separator: {line!r}", path)
        split_at = min(positions)
        key = line[:split_at].strip().lower()
        if not key:
            raise MetadataParseError(f"Meta line {number} has an empty key.", path)
        meta[key] = unquote(line[split_at + 1 :].strip())
    body = "\n".join(lines[end + 1 :])
    return meta, body


def parse_meta_date(key: str, value: str, path: Optional[Path] = None) -> dt.date:
    if DATE_RE.match(value):
        try:
            return dt.date.fromisoformat(value)
        except ValueError:
            pass
    raise MetadataParseError(f"Invalid {key} {value!r}, expected YYYY-MM-DD.", path)


@dataclass(frozen=True)
class FileTimes:
    created: Optional[dt.datetime] = None
    modified: Optional[dt.datetime] = None


def file_times(path: Path) -> FileTimes:
    stat = path.stat()
    birth = getattr(stat, "st_birthtime", None)
    created = dt.datetime.fromtimestamp(birth) if birth else None
    return FileTimes(created=created, modified=dt.datetime.fromtimestamp(stat.st_mtime))


def first_available(*lookups: Callable[[], Optional[T]]) -> Optional[T]:
    for lookup in lookups:
        value = lookup()
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class Metadata:
    title: str
    date: dt.date
    updated: dt.date
    category: str = ""
    tags: frozenset[str] = frozenset()
    template: Optional[Path] = None
    path: Optional[str] = None
    draft: bool = False
    raw: dict[str, str] = field(default_factory=dict, compare=False)

    def explicit(self, key: str) -> Optional[str]:
        key = key.lower()
        if key in self.raw:
            return self.raw[key]
        for alias, canonical in KEY_ALIASES.items():
            if canonical == key and alias in self.raw:
                return self.raw[alias]
        return None

    def sort_value(self, key: str) -> object:
        key = KEY_ALIASES.get(key.lower(), key.lower())
        if key == "title":
            return self.title
        if key == "date":
            return self.date
        if key == "updated":
            return self.updated
        if key == "category":
            return self.category
        if key == "tags":
            return tuple(sorted(self.tags))
        return self.raw.get(key, "")

    def lookup(self, key: str) -> str:
        value = self.sort_value(key)
        if isinstance(value, dt.date):
            return value.isoformat()
        if isinstance(value, tuple):
            return ", ".join(value)
        return str(value)


def resolve_metadata(
    meta: dict[str, str],
    *,
    source: Path,
    name: str,
    parent_name: str,
    times: FileTimes,
    now: dt.datetime,
    first_heading: Callable[[], Optional[str]],
    content_root: Path,
) -> Metadata:
    def explicit(key: str) -> Callable[[], Optional[str]]:
        return lambda: meta.get(key) or None

    def explicit_date(*keys: str) -> Callable[[], Optional[dt.date]]:
        def lookup() -> Optional[dt.date]:
            for key in keys:
                if meta.get(key):
                    return parse_meta_date(key, meta[key], source)
            return None

        return lookup

    def fs_date(value: Optional[dt.datetime]) -> Callable[[], Optional[dt.date]]:
        return lambda: value.date() if value is not None else None

    for key in sorted(DATE_KEYS & meta.keys()):
        if meta[key]:
            parse_meta_date(key, meta[key], source)

    title = first_available(explicit("title"), first_heading, lambda: name)
    date = first_available(explicit_date("date", "created"), fs_date(times.created), lambda: now.date())
    updated = first_available(explicit_date("updated", "modified"), fs_date(times.modified), lambda: date)
    category = first_available(explicit("category"), lambda: parent_name)

    tags = frozenset(parse_list(meta["tags"])) if meta.get("tags") else frozenset()

    template = None
    if meta.get("template"):
        template = resolve_source_path(content_root, source.parent, meta["template"])

    output_override = meta.get("path") or None
    if output_override is not None and ".." in PurePosixPath(output_override).parts:
        raise MetadataParseError(f"Output path {output_override!r} must stay inside the output directory.", source)

    return Metadata(
        title=title,
        date=date,
        updated=updated,
        category=category,
        tags=tags,
        template=template,
        path=output_override,
        draft=parse_bool(meta.get("draft")),
        raw=dict(meta),
    )


@dataclass(frozen=True)
class ContentEntry:
    source: Path
    relative: PurePosixPath
    text: str
    metadata: Metadata
    html: str
    headings: tuple[HeadingNode, ...]
    output_path: PurePosixPath

    @property
    def is_folder_post(self) -> bool:
        return self.relative.name == FOLDER_POST_NAME


def output_path_for(relative: PurePosixPath, metadata: Metadata, ext: str = "html") -> PurePosixPath:
    """Where an entry is written, relative to the output directory.

    ``path`` from the metadata wins outright. Otherwise the page lands in
    ``<parent>/<slug>/index.<ext>``, where the parent is the source directory
    or the slugified category when one is set explicitly.
    """
    index_name = f"index.{ext}"
    if metadata.path:
        target = PurePosixPath(metadata.path.strip("/"))
        if target.suffix == f".{ext}":
            return target
        return target / index_name

    if relative.name == FOLDER_POST_NAME:
        stem = relative.parent.name
        parent = relative.parent.parent
    else:
        stem = relative.stem
        parent = relative.parent
    if metadata.explicit("category"):
        parent = PurePosixPath(slugify(metadata.category, fallback="uncategorized"))

    if relative.name != FOLDER_POST_NAME and stem.lower() == "index":
        return parent / index_name
    return parent / slugify(stem) / index_name


def load_entry(
    source: Path,
    content_root: Path,
    now: dt.datetime,
    highlight: bool = True,
    ext: str = "html",
) -> ContentEntry:
    relative = PurePosixPath(source.relative_to(content_root).as_posix())
    try:
        text = source.read_text(encoding="utf-8")
        times = file_times(source)
    except (OSError, UnicodeDecodeError) as exc:
        raise IoError(f"Failed to read file: {exc}", source) from exc

    meta, body = parse_meta_block(text, source)
    rendered = render_markdown(body, highlight=highlight)
    forest = build_heading_forest(rendered.headings)

    def first_heading() -> Optional[str]:
        for _, node in iter_headings(forest):
            return node.text or None
        return None

    if relative.name == FOLDER_POST_NAME:
        name = relative.parent.name
        entry_dir = relative.parent.parent
    else:
        name = relative.stem
        entry_dir = relative.parent
    parent_name = entry_dir.name

    metadata = resolve_metadata(
        meta,
        source=source,
        name=name,
        parent_name=parent_name,
        times=times,
        now=now,
        first_heading=first_heading,
        content_root=content_root,
    )
    return ContentEntry(
        source=source,
        relative=relative,
        text=text,
        metadata=metadata,
        html=rendered.html,
        headings=forest,
        output_path=output_path_for(relative, metadata, ext),
    )
