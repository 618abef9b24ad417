"""构成案 / 文章的 Markdown 组装。"""

from __future__ import annotations

from collections.abc import Mapping

from src.application.services.content_generation.types import Outline

UNTITLED_MARKDOWN = "無題のマークダウン"


def render_outline_markdown(outline: Outline) -> str:
    md = f"# {outline.title}\n\n"
    for section in outline.sections:
        md += f"## {section.heading}\n\n"
        for bullet in section.bullets:
            md += f"- {bullet}\n"
        md += "\n"
    return md


def render_article_markdown(outline: Outline, content: Mapping[str, str]) -> str:
    """按大纲顺序拼接正文；缺失的章节输出空正文。"""
    md = f"# {outline.title}\n\n"
    for section in outline.sections:
        md += f"## {section.heading}\n\n"
        md += (content.get(section.heading) or "") + "\n\n"
    return md


def extract_markdown_title(md_text: str) -> str:
    """取首个非空行作为标题，去掉开头的 `#`。"""
    stripped = (md_text or "").strip()
    first_line = stripped.split("\n")[0] if stripped else ""
    if not first_line:
        return UNTITLED_MARKDOWN
    return first_line.lstrip("#").lstrip()
