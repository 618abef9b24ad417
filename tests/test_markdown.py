from __future__ import annotations

from src.application.services.content_generation.markdown import (
    UNTITLED_MARKDOWN,
    extract_markdown_title,
    render_article_markdown,
    render_outline_markdown,
)
from src.application.services.content_generation.types import Outline, OutlineSection


def _outline() -> Outline:
    return Outline(
        title="T",
        sections=[
            OutlineSection(heading="A", bullets=["a1", "a2"]),
            OutlineSection(heading="B", bullets=[]),
        ],
    )


def test_article_markdown_missing_content_renders_empty_body():
    outline = Outline(title="T", sections=[OutlineSection(heading="S", bullets=[])])
    assert render_article_markdown(outline, {}) == "# T\n\n## S\n\n\n\n"


def test_outline_markdown_layout():
    assert render_outline_markdown(_outline()) == "# T\n\n## A\n\n- a1\n- a2\n\n## B\n\n\n"


def test_article_markdown_follows_outline_order_not_content_order():
    content = {"B": "body b", "A": "body a"}
    assert render_article_markdown(_outline(), content) == "# T\n\n## A\n\nbody a\n\n## B\n\nbody b\n\n"


def test_article_markdown_ignores_unknown_headings():
    md = render_article_markdown(_outline(), {"A": "x", "Z": "ignored"})
    assert "ignored" not in md


def test_render_is_pure():
    outline = _outline()
    content = {"A": "x"}
    first = render_article_markdown(outline, content)
    assert render_article_markdown(outline, content) == first
    assert content == {"A": "x"}
    assert outline.headings() == ["A", "B"]


def test_extract_markdown_title():
    assert extract_markdown_title("# タイトル\n\n本文") == "タイトル"
    assert extract_markdown_title("\n\n## 見出し  \n") == "見出し"
    assert extract_markdown_title("plain first line\nsecond") == "plain first line"
    assert extract_markdown_title("   ") == UNTITLED_MARKDOWN
