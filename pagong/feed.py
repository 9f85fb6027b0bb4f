from __future__ import annotations

import copy
import datetime as dt
import io
import re
import xml.etree.ElementTree as etree
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .content import ContentEntry
from .errors import FeedAssemblyError
from .utils import directory_url, iso_date, join_url

ATOM_NS = "http://www.w3.org/2005/Atom"
FEED_CONTENT_TYPE = "html"
RESERVED_PREFIX_RE = re.compile(r"ns\d+$")


@dataclass(frozen=True)
class FeedEntry:
    title: str
    permalink: str
    published: dt.date
    updated: dt.date
    content: str
    category: str = ""


def feed_entry_from(entry: ContentEntry, base_url: str) -> FeedEntry:
    return FeedEntry(
        title=entry.metadata.title,
        permalink=join_url(base_url, directory_url(entry.output_path)),
        published=entry.metadata.date,
        updated=entry.metadata.updated,
        content=entry.html,
        category=entry.metadata.category,
    )


def sort_feed_entries(entries: Sequence[FeedEntry]) -> list[FeedEntry]:
    ordered = sorted(entries, key=lambda e: e.permalink)
    ordered.sort(key=lambda e: e.published, reverse=True)
    return ordered


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _declared_namespaces(text: str) -> tuple[tuple[str, str], ...]:
    declared = []
    for _, (prefix, uri) in etree.iterparse(io.StringIO(text), events=("start-ns",)):
        if not RESERVED_PREFIX_RE.match(prefix):
            declared.append((prefix, uri))
    return tuple(declared)


class FeedSkeleton:
    """A user-authored Atom document whose ``feed`` root receives the entries."""

    def __init__(
        self,
        root: etree.Element,
        source: Optional[Path] = None,
        namespaces: Sequence[tuple[str, str]] = (),
    ):
        self.root = root
        self.source = source
        self.namespaces = tuple(namespaces)
        self.namespace = root.tag[1:].split("}", 1)[0] if root.tag.startswith("{") else ""

    @classmethod
    def parse(cls, text: str, source: Optional[Path] = None) -> "FeedSkeleton":
        parser = etree.XMLParser(target=etree.TreeBuilder(insert_comments=True, insert_pis=True))
        try:
            namespaces = _declared_namespaces(text)
            root = etree.fromstring(text, parser=parser)
        except etree.ParseError as exc:
            raise FeedAssemblyError(f"Feed skeleton must hold exactly one well-formed feed root: {exc}", source) from exc
        if _local_name(root.tag) != "feed":
            raise FeedAssemblyError(f"Feed skeleton root is <{_local_name(root.tag)}>, expected <feed>.", source)
        return cls(root, source, namespaces)

    def _tag(self, name: str) -> str:
        return f"{{{self.namespace}}}{name}" if self.namespace else name

    def _children(self, name: str) -> list[etree.Element]:
        return [child for child in self.root if _local_name(child.tag) == name]

    @property
    def base_url(self) -> str:
        for link in self._children("link"):
            if link.get("rel", "alternate") == "alternate" and link.get("href"):
                return link.get("href")
        return ""

    def _build_entry(self, item: FeedEntry) -> etree.Element:
        entry = etree.Element(self._tag("entry"))
        etree.SubElement(entry, self._tag("title")).text = item.title
        etree.SubElement(entry, self._tag("link"), {"href": item.permalink, "rel": "alternate"})
        etree.SubElement(entry, self._tag("id")).text = item.permalink
        etree.SubElement(entry, self._tag("published")).text = iso_date(item.published)
        etree.SubElement(entry, self._tag("updated")).text = iso_date(item.updated)
        if item.category:
            etree.SubElement(entry, self._tag("category"), {"term": item.category})
        content = etree.SubElement(entry, self._tag("content"), {"type": FEED_CONTENT_TYPE})
        content.text = item.content
        return entry

    def assemble(self, entries: Sequence[FeedEntry]) -> str:
        """Serialize the skeleton with one ``entry`` per item, in the given order.

        Entries already present in the skeleton are dropped; every other child
        keeps its place. The skeleton itself is left untouched.
        """
        root = copy.deepcopy(self.root)
        for old in [child for child in root if _local_name(child.tag) == "entry"]:
            root.remove(old)

        indent = root.text if root.text and not root.text.strip() else "\n  "
        new_children = []
        if entries and not any(_local_name(child.tag) == "updated" for child in root):
            updated = etree.Element(self._tag("updated"))
            updated.text = iso_date(max(item.updated for item in entries))
            new_children.append(updated)
        for item in entries:
            element = self._build_entry(item)
            etree.indent(element, space="  ", level=1)
            new_children.append(element)

        if new_children:
            if len(root):
                root[-1].tail = indent
            else:
                root.text = indent
            for element in new_children:
                element.tail = indent
                root.append(element)
            new_children[-1].tail = "\n"

        # ElementTree only reads prefixes from its module-wide map, so the
        # skeleton's own prefixes are put back before every serialization.
        for prefix, uri in self.namespaces:
            etree.register_namespace(prefix, uri)
        body = etree.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="utf-8"?>\n{body}\n'
