from __future__ import annotations

import html
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Sequence, Union

from .cascade import CssReference, stylesheet_link
from .content import ContentEntry
from .errors import DirectiveResolutionError, DirectiveSyntaxError
from .toc import HeadingNode, render_toc

OPEN_MARKER = "<!--P/"
CLOSE_MARKER = "/P-->"
INCLUDE_RAW_SUFFIXES = {".html", ".htm"}

DEFAULT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title><!--P/META title/P--></title>
<!--P/CSS/P-->
</head>
<body>
<main>
<!--P/CONTENTS/P-->
</main>
</body>
</html>
"""


@dataclass(frozen=True)
class Contents:
    pass


@dataclass(frozen=True)
class Css:
    pass


@dataclass(frozen=True)
class Toc:
    depth: Optional[int] = None


@dataclass(frozen=True)
class Listing:
    path: str
    sort_key: Optional[str] = None
    ascending: bool = True


@dataclass(frozen=True)
class Meta:
    key: str


@dataclass(frozen=True)
class Include:
    path: str


@dataclass(frozen=True)
class Passthrough:
    text: str


Directive = Union[Contents, Css, Toc, Listing, Meta, Include, Passthrough]


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index


def _next_token(text: str, index: int) -> tuple[Optional[str], int]:
    index = _skip_whitespace(text, index)
    if index == len(text):
        return None, index
    if text[index] != '"':
        end = index
        while end < len(text) and not text[end].isspace():
            end += 1
        return text[index:end], end

    value = []
    index += 1
    while index < len(text):
        char = text[index]
        if char == "\\" and index + 1 < len(text) and text[index + 1] in '"\\':
            value.append(text[index + 1])
            index += 2
            continue
        if char == '"':
            return "".join(value), index + 1
        value.append(char)
        index += 1
    raise DirectiveSyntaxError(f"Unterminated quoted argument in {text!r}")


def tokenize_arguments(text: str) -> list[str]:
    """Split directive arguments.

    Arguments are separated by whitespace unless double-quoted. Inside quotes
    ``\\"`` and ``\\\\`` are the only escapes; other backslashes stay as they are.
    """
    tokens = []
    index = 0
    while True:
        token, index = _next_token(text, index)
        if token is None:
            return tokens
        tokens.append(token)


def _single_argument(name: str, args: list[str]) -> str:
    if len(args) != 1:
        raise DirectiveSyntaxError(f"{name} takes exactly one argument, got {len(args)}")
    return args[0]


def parse_directive(body: str, raw: str) -> Directive:
    name, rest = _next_token(body, 0)
    if name not in {"CONTENTS", "CSS", "TOC", "LIST", "META", "INCLUDE"}:
        return Passthrough(raw)
    args = tokenize_arguments(body[rest:])

    if name == "CONTENTS":
        return Contents()
    if name == "CSS":
        return Css()
    if name == "TOC":
        if not args:
            return Toc()
        if len(args) > 1 or not args[0].isdecimal():
            raise DirectiveSyntaxError(f"TOC depth must be a non-negative integer: {' '.join(args)!r}")
        return Toc(int(args[0]))
    if name == "LIST":
        if not args:
            raise DirectiveSyntaxError("LIST requires a directory path")
        path, options = args[0], args[1:]
        if not options:
            return Listing(path)
        if len(options) != 3 or options[0] != "sort" or options[2] not in {"asc", "desc"}:
            raise DirectiveSyntaxError(f"LIST options must be 'sort KEY asc|desc', got {' '.join(options)!r}")
        return Listing(path, sort_key=options[1], ascending=options[2] == "asc")
    if name == "META":
        return Meta(_single_argument(name, args))
    return Include(_single_argument(name, args))


def parse_template(text: str) -> tuple[Union[str, Directive], ...]:
    segments: list[Union[str, Directive]] = []
    offset = 0
    while True:
        start = text.find(OPEN_MARKER, offset)
        if start < 0:
            break
        body_start = start + len(OPEN_MARKER)
        body_end = text.find(CLOSE_MARKER, body_start)
        if body_end < 0:
            break
        end = body_end + len(CLOSE_MARKER)
        if start > offset:
            segments.append(text[offset:start])
        segments.append(parse_directive(text[body_start:body_end], text[start:end]))
        offset = end
    if offset < len(text):
        segments.append(text[offset:])
    return tuple(segments)


@dataclass(frozen=True)
class RenderContext:
    entry: ContentEntry
    stylesheets: Sequence[CssReference]
    headings: Sequence[HeadingNode]
    link: Callable[[PurePosixPath], str]
    read_file: Callable[[str], tuple[Path, bytes]]
    list_entries: Callable[[str], Sequence[ContentEntry]]


def _render_contents(directive: Contents, context: RenderContext) -> str:
    return context.entry.html


def _render_css(directive: Css, context: RenderContext) -> str:
    return "\n".join(stylesheet_link(context.link(ref.path)) for ref in context.stylesheets)


def _render_toc(directive: Toc, context: RenderContext) -> str:
    return render_toc(context.headings, directive.depth)


def _render_listing(directive: Listing, context: RenderContext) -> str:
    entries = sorted(context.list_entries(directive.path), key=lambda e: e.output_path.as_posix())
    if directive.sort_key is None:
        entries.sort(key=lambda e: e.metadata.date, reverse=True)
    else:
        key = directive.sort_key
        entries.sort(key=lambda e: e.metadata.sort_value(key), reverse=not directive.ascending)
    items = "".join(
        f'<li><a href="{html.escape(context.link(item.output_path))}">'
        f"{html.escape(item.metadata.title, quote=False)}</a></li>"
        for item in entries
    )
    return f"<ul>{items}</ul>"


def _render_meta(directive: Meta, context: RenderContext) -> str:
    return html.escape(context.entry.metadata.lookup(directive.key), quote=False)


def _render_include(directive: Include, context: RenderContext) -> str:
    path, data = context.read_file(directive.path)
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DirectiveResolutionError(f"Cannot include non UTF-8 file {directive.path!r}", path) from exc
    if path.suffix.lower() in INCLUDE_RAW_SUFFIXES:
        return text
    return html.escape(text, quote=False)


def _render_passthrough(directive: Passthrough, context: RenderContext) -> str:
    return directive.text


RENDERERS = {
    Contents: _render_contents,
    Css: _render_css,
    Toc: _render_toc,
    Listing: _render_listing,
    Meta: _render_meta,
    Include: _render_include,
    Passthrough: _render_passthrough,
}


class HtmlTemplate:
    def __init__(self, text: str, source: Optional[Path] = None):
        self.text = text
        self.source = source
        self._segments: Optional[tuple[Union[str, Directive], ...]] = None

    @property
    def segments(self) -> tuple[Union[str, Directive], ...]:
        if self._segments is None:
            try:
                self._segments = parse_template(self.text)
            except DirectiveSyntaxError as exc:
                raise DirectiveSyntaxError(exc.message, self.source) from exc
        return self._segments

    def render(self, context: RenderContext) -> str:
        parts = []
        for segment in self.segments:
            if isinstance(segment, str):
                parts.append(segment)
            else:
                parts.append(RENDERERS[type(segment)](segment, context))
        return "".join(parts)
