from __future__ import annotations

import dataclasses
import datetime as dt
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from .cascade import collect_css
from .content import ContentEntry, load_entry
from .errors import DirectiveResolutionError, PagongError, StructuralError
from .feed import FeedSkeleton, feed_entry_from, sort_feed_entries
from .render import copy_file, read_template, write_text
from .template import DEFAULT_TEMPLATE, HtmlTemplate, RenderContext
from .utils import clean_output_dir, relative_url, resolve_source_path

SOURCE_SUFFIX = ".md"
FEED_LIMIT = 20

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Scan:
    root: Path
    directories: list[PurePosixPath] = field(default_factory=list)
    sources: list[Path] = field(default_factory=list)
    feeds: list[PurePosixPath] = field(default_factory=list)
    copies: list[PurePosixPath] = field(default_factory=list)


@dataclass
class BuildReport:
    pages: list[Path] = field(default_factory=list)
    copied: list[Path] = field(default_factory=list)
    feeds: list[Path] = field(default_factory=list)
    errors: list[PagongError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.pages) and not self.errors


def scan_content(root: Path, feed_ext: str = "atom") -> Scan:
    """Classify every file below ``root`` in one sorted walk.

    A directory holding ``post.md`` is a folder post: the markdown file is its
    source and every other file in it is an asset copied alongside.
    """
    scan = Scan(root=root)
    feed_suffix = f".{feed_ext.lower()}"
    for path in sorted(root.rglob("*"), key=lambda p: p.as_posix()):
        rel = PurePosixPath(path.relative_to(root).as_posix())
        if path.is_dir():
            scan.directories.append(rel)
            continue
        if not path.is_file():
            continue
        suffix = path.suffix.lower()
        if suffix == SOURCE_SUFFIX:
            scan.sources.append(path)
        elif suffix == feed_suffix:
            scan.feeds.append(rel)
        else:
            scan.copies.append(rel)
    return scan


def parallel_map(func: Callable[[T], R], items: Sequence[T], workers: int) -> list[R]:
    workers = max(1, int(workers or 1))
    if workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
        return list(executor.map(func, items))


def assign_output_paths(entries: Iterable[ContentEntry]) -> list[ContentEntry]:
    """Give colliding pages distinct directories: ``hello/``, ``hello-2/``..."""
    used: set[PurePosixPath] = set()
    result = []
    for entry in entries:
        target = entry.output_path
        counter = 2
        while target in used:
            original = entry.output_path
            if original.parent.name:
                target = original.parent.with_name(f"{original.parent.name}-{counter}") / original.name
            else:
                target = PurePosixPath(f"{original.stem}-{counter}") / original.name
            counter += 1
        used.add(target)
        if target != entry.output_path:
            entry = dataclasses.replace(entry, output_path=target)
        result.append(entry)
    return result


class SiteBuilder:
    def __init__(
        self,
        root: Path,
        output: Path,
        *,
        default_template: str = DEFAULT_TEMPLATE,
        dist_ext: str = "html",
        feed_ext: str = "atom",
        site_url: str = "",
        feed_limit: int = FEED_LIMIT,
        workers: int = 1,
        include_drafts: bool = False,
        highlight: bool = True,
        clean: bool = True,
        project_root: Optional[Path] = None,
        now: Optional[dt.datetime] = None,
    ):
        self.root = root
        self.output = output
        self.default_template = HtmlTemplate(default_template)
        self.dist_ext = dist_ext
        self.feed_ext = feed_ext
        self.site_url = site_url
        self.feed_limit = feed_limit
        self.workers = workers
        self.include_drafts = include_drafts
        self.highlight = highlight
        self.clean = clean
        self.project_root = project_root or root.parent
        self.now = now or dt.datetime.now()
        self.report = BuildReport()
        self.entries: list[ContentEntry] = []
        self.skipped: set[Path] = set()
        self.templates: dict[Path, HtmlTemplate] = {}

    @property
    def published(self) -> list[ContentEntry]:
        """Entries whose page has not failed to render or write, in scan order."""
        return [entry for entry in self.entries if entry.source not in self.skipped]

    # Loading.

    def _load(self, source: Path) -> Optional[ContentEntry]:
        try:
            return load_entry(source, self.root, self.now, highlight=self.highlight, ext=self.dist_ext)
        except PagongError as exc:
            self.report.errors.append(exc)
            return None

    def load_entries(self, sources: Sequence[Path]) -> list[ContentEntry]:
        loaded = parallel_map(self._load, sources, self.workers)
        entries = [
            entry for entry in loaded if entry is not None and (self.include_drafts or not entry.metadata.draft)
        ]
        self.entries = assign_output_paths(entries)
        return self.entries

    def load_templates(self) -> dict[Path, HtmlTemplate]:
        for entry in self.entries:
            path = entry.metadata.template
            if path is None or path in self.templates:
                continue
            try:
                self.templates[path] = HtmlTemplate(read_template(path), path)
            except (OSError, UnicodeDecodeError) as exc:
                raise StructuralError(f"Unreadable template referenced by {entry.source}: {exc}", path) from exc
        return self.templates

    # Rendering.

    def _read_file(self, entry: ContentEntry, value: str) -> tuple[Path, bytes]:
        path = resolve_source_path(self.root, entry.source.parent, value)
        try:
            return path, path.read_bytes()
        except OSError as exc:
            raise DirectiveResolutionError(f"Cannot include {value!r}: {exc}", entry.source) from exc

    def _list_entries(self, entry: ContentEntry, value: str) -> list[ContentEntry]:
        directory = resolve_source_path(self.root, entry.source.parent, value)
        if not directory.is_dir():
            raise DirectiveResolutionError(f"LIST path {value!r} is not a directory", entry.source)
        directory = directory.resolve()
        return [
            other
            for other in self.published
            if other is not entry and other.source.resolve().is_relative_to(directory)
        ]

    def context_for(self, entry: ContentEntry) -> RenderContext:
        return RenderContext(
            entry=entry,
            stylesheets=collect_css(entry.source.parent, self.root),
            headings=entry.headings,
            link=lambda target: relative_url(entry.output_path, target),
            read_file=lambda value: self._read_file(entry, value),
            list_entries=lambda value: self._list_entries(entry, value),
        )

    def _render(self, entry: ContentEntry) -> Optional[str]:
        template = self.default_template
        if entry.metadata.template is not None:
            template = self.templates[entry.metadata.template]
        try:
            return template.render(self.context_for(entry))
        except PagongError as exc:
            if exc.path is None:
                exc.path = entry.source
            self.report.errors.append(exc)
            return None

    def render_pages(self) -> list[tuple[ContentEntry, str]]:
        """Render every entry, then again without the failures when there are any.

        Rendering never depends on which other pages exist, only on what LIST
        shows, so the second pass cannot fail where the first succeeded.
        """
        rendered = parallel_map(self._render, self.entries, self.workers)
        failed = {entry.source for entry, page in zip(self.entries, rendered) if page is None}
        if not failed:
            return list(zip(self.entries, rendered))
        self.skipped |= failed
        survivors = self.published
        rendered = parallel_map(self._render, survivors, self.workers)
        return [(entry, page) for entry, page in zip(survivors, rendered) if page is not None]

    def load_feeds(self, feeds: Sequence[PurePosixPath]) -> list[tuple[PurePosixPath, FeedSkeleton]]:
        skeletons = []
        for rel in feeds:
            source = self.root / rel
            try:
                text = source.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise StructuralError(f"Unreadable feed skeleton: {exc}", source) from exc
            skeletons.append((rel, FeedSkeleton.parse(text, source)))
        return skeletons

    def render_feeds(self, skeletons: Sequence[tuple[PurePosixPath, FeedSkeleton]]) -> list[tuple[PurePosixPath, str]]:
        results = []
        for rel, skeleton in skeletons:
            base_url = skeleton.base_url or self.site_url
            feed_dir = (self.root / rel).parent.resolve()
            items = sort_feed_entries(
                [
                    feed_entry_from(entry, base_url)
                    for entry in self.published
                    if entry.source.resolve().is_relative_to(feed_dir)
                ]
            )
            if self.feed_limit > 0:
                items = items[: self.feed_limit]
            results.append((rel, skeleton.assemble(items)))
        return results

    # Writing.

    def build(self) -> BuildReport:
        if not self.root.is_dir():
            raise StructuralError("Content directory not found.", self.root)

        scan = scan_content(self.root, self.feed_ext)
        self.load_entries(scan.sources)
        templates = self.load_templates()
        pages = self.render_pages()
        skeletons = self.load_feeds(scan.feeds)

        consumed = {path.resolve() for path in templates}
        copies = [rel for rel in scan.copies if (self.root / rel).resolve() not in consumed]

        if self.clean:
            clean_output_dir(self.output, self.project_root)
        self.output.mkdir(parents=True, exist_ok=True)
        for rel in scan.directories:
            (self.output / rel).mkdir(parents=True, exist_ok=True)
        for rel in copies:
            dest = self.output / rel
            if self._attempt(lambda: copy_file(self.root / rel, dest)):
                self.report.copied.append(dest)
        for entry, page in pages:
            dest = self.output / entry.output_path
            if self._attempt(lambda: write_text(dest, page)):
                self.report.pages.append(dest)
            else:
                self.skipped.add(entry.source)
        # Feeds only list pages that were written.
        for rel, text in self.render_feeds(skeletons):
            dest = self.output / rel
            if self._attempt(lambda: write_text(dest, text)):
                self.report.feeds.append(dest)
        return self.report

    def _attempt(self, action: Callable[[], None]) -> bool:
        try:
            action()
        except PagongError as exc:
            self.report.errors.append(exc)
            return False
        return True


def build_site(root: Path, output: Path, **options) -> BuildReport:
    return SiteBuilder(root, output, **options).build()
