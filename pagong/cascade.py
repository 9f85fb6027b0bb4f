from __future__ import annotations

import html
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

STYLE_SUFFIX = ".css"


@dataclass(frozen=True)
class CssReference:
    path: PurePosixPath
    depth: int


def stylesheets_in(directory: Path) -> list[Path]:
    return sorted(
        (item for item in directory.iterdir() if item.is_file() and item.suffix.lower() == STYLE_SUFFIX),
        key=lambda p: p.name,
    )


def collect_css(directory: Path, root: Path) -> list[CssReference]:
    """Stylesheets applying to pages in ``directory``, root first.

    Later references override earlier ones, the same way the browser cascades
    link elements. A ``style.css`` present at two levels yields two references.
    """
    directory = directory.resolve()
    root = root.resolve()
    if not directory.is_relative_to(root):
        raise ValueError(f"{directory} is not inside {root}")

    levels = []
    current = directory
    while True:
        levels.append(current)
        if current == root:
            break
        current = current.parent
    levels.reverse()

    references = []
    for level in levels:
        rel = level.relative_to(root)
        depth = len(rel.parts)
        for sheet in stylesheets_in(level):
            references.append(CssReference(PurePosixPath(sheet.relative_to(root).as_posix()), depth))
    return references


def stylesheet_link(href: str) -> str:
    return f'<link rel="stylesheet" type="text/css" href="{html.escape(href)}">'
