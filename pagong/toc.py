from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

ANCHOR_SEP_RE = re.compile(r"[\W_]+", re.UNICODE)
ANCHOR_FALLBACK = "section"


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    anchor: Optional[str] = None


@dataclass(frozen=True)
class HeadingNode:
    level: int
    text: str
    anchor: str
    children: tuple["HeadingNode", ...] = ()


def heading_anchor(text: str) -> str:
    anchor = ANCHOR_SEP_RE.sub("-", text.lower()).strip("-")
    return anchor or ANCHOR_FALLBACK


def assign_anchors(headings: Sequence[Heading]) -> list[str]:
    """Give every heading an id that is unique within the document.

    Explicit anchors are kept as the base name. Repeats get ``-2``, ``-3``...
    appended in document order, so two headings titled "Intro" become
    ``intro`` and ``intro-2``.
    """
    used: set[str] = set()
    anchors = []
    for heading in headings:
        base = heading.anchor or heading_anchor(heading.text)
        anchor = base
        counter = 2
        while anchor in used:
            anchor = f"{base}-{counter}"
            counter += 1
        used.add(anchor)
        anchors.append(anchor)
    return anchors


def build_heading_forest(headings: Sequence[Heading]) -> tuple[HeadingNode, ...]:
    """Nest a flat list of headings by level.

    A heading becomes a child of the nearest preceding heading with a lower
    level. The stack holds the currently open ancestors; a node is frozen when
    it is popped, once all of its children are known.
    """
    roots: list[HeadingNode] = []
    stack: list[tuple[int, str, str, list[HeadingNode]]] = []

    def close() -> None:
        level, text, anchor, children = stack.pop()
        node = HeadingNode(level, text, anchor, tuple(children))
        if stack:
            stack[-1][3].append(node)
        else:
            roots.append(node)

    for heading, anchor in zip(headings, assign_anchors(headings)):
        if not 1 <= heading.level <= 6:
            raise ValueError(f"Heading level out of range: {heading.level}")
        while stack and stack[-1][0] >= heading.level:
            close()
        stack.append((heading.level, heading.text, anchor, []))
    while stack:
        close()
    return tuple(roots)


def iter_headings(
    forest: Sequence[HeadingNode], depth: Optional[int] = None, _current: int = 1
) -> Iterator[tuple[int, HeadingNode]]:
    if depth is not None and _current > depth:
        return
    for node in forest:
        yield _current, node
        yield from iter_headings(node.children, depth, _current + 1)


def render_toc(forest: Sequence[HeadingNode], depth: Optional[int] = None) -> str:
    if not forest or (depth is not None and depth < 1):
        return ""
    return _render_level(forest, depth, 1)


def _render_level(nodes: Sequence[HeadingNode], depth: Optional[int], current: int) -> str:
    items = []
    for node in nodes:
        nested = ""
        if node.children and (depth is None or current < depth):
            nested = _render_level(node.children, depth, current + 1)
        items.append(
            f'<li><a href="#{html.escape(node.anchor)}">{html.escape(node.text, quote=False)}</a>{nested}</li>'
        )
    return f"<ul>{''.join(items)}</ul>"
