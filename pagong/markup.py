from __future__ import annotations

import re
from dataclasses import dataclass

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor
from markdown.util import ETX, STX

from .toc import Heading, assign_anchors

HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
ESCAPED_CHAR_RE = re.compile(f"{STX}([0-9]+){ETX}")
PLACEHOLDER_RE = re.compile(f"{STX}[^{ETX}]*{ETX}")


@dataclass(frozen=True)
class RenderedMarkdown:
    html: str
    headings: tuple[Heading, ...]


def heading_text(element) -> str:
    text = "".join(element.itertext())
    # Backslash escapes are stashed as STX<codepoint>ETX until the final unescape pass.
    text = ESCAPED_CHAR_RE.sub(lambda m: chr(int(m.group(1))), text)
    text = PLACEHOLDER_RE.sub("", text)
    return " ".join(text.split())


class HeadingTreeprocessor(Treeprocessor):
    def __init__(self, md, collected: list[Heading]):
        super().__init__(md)
        self.collected = collected

    def run(self, root):
        elements = []
        headings = []
        for el in root.iter():
            level = HEADING_TAGS.get(el.tag)
            if level is None:
                continue
            elements.append(el)
            headings.append(Heading(level, heading_text(el), el.get("id") or None))
        anchors = assign_anchors(headings)
        for el, heading, anchor in zip(elements, headings, anchors):
            el.set("id", anchor)
            self.collected.append(Heading(heading.level, heading.text, anchor))


class HeadingExtension(Extension):
    def __init__(self, collected: list[Heading], **kwargs):
        super().__init__(**kwargs)
        self.collected = collected

    def extendMarkdown(self, md):
        # After attr_list (8) so explicit {#id} values are visible, before unescape (0).
        md.treeprocessors.register(HeadingTreeprocessor(md, self.collected), "pagong_headings", 5)


def render_markdown(text: str, highlight: bool = True) -> RenderedMarkdown:
    collected: list[Heading] = []
    extensions = ["fenced_code", "tables", "attr_list", HeadingExtension(collected)]
    extension_configs = {}
    if highlight:
        extensions.append("codehilite")
        extension_configs["codehilite"] = {"guess_lang": False, "css_class": "codehilite"}
    md = markdown.Markdown(extensions=extensions, extension_configs=extension_configs)
    html_content = md.convert(text)
    return RenderedMarkdown(html_content, tuple(collected))
