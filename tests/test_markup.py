"""
Markdown rendering tests
"""

from pagong.markup import render_markdown


class TestRenderMarkdown:
    """Test conversion and heading collection"""

    def test_heading_ids(self):
        rendered = render_markdown("# Intro\n\ntext\n\n## Intro\n")
        assert '<h1 id="intro">Intro</h1>' in rendered.html
        assert '<h2 id="intro-2">Intro</h2>' in rendered.html
        assert [(h.level, h.text, h.anchor) for h in rendered.headings] == [(1, "Intro", "intro"), (2, "Intro", "intro-2")]

    def test_inline_markup_in_heading(self):
        rendered = render_markdown("## Using `pagong` *fast*\n")
        assert rendered.headings[0].text == "Using pagong fast"
        assert rendered.headings[0].anchor == "using-pagong-fast"

    def test_escaped_characters_in_heading(self):
        rendered = render_markdown("# 1\\. Start\n")
        assert rendered.headings[0].text == "1. Start"

    def test_explicit_id(self):
        rendered = render_markdown("# Intro {#top}\n")
        assert rendered.headings[0].anchor == "top"
        assert 'id="top"' in rendered.html

    def test_fenced_code_highlighting(self):
        rendered = render_markdown("```python\nprint('x')\n```\n")
        assert 'class="codehilite"' in rendered.html

    def test_without_highlighting(self):
        rendered = render_markdown("```python\nprint('x')\n```\n", highlight=False)
        assert "codehilite" not in rendered.html
        assert "<code" in rendered.html

    def test_tables(self):
        rendered = render_markdown("| a | b |\n|---|---|\n| 1 | 2 |\n")
        assert "<table>" in rendered.html
