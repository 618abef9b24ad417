"""内容生成模块类型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderChoice(str, Enum):
    """模型选择：Gemini 走批量生成，OpenAI 走流式生成。"""

    GEMINI = "gemini"
    OPENAI = "openai"


class GenerationMode(str, Enum):
    """章节生成方式。"""

    BATCH = "batch"
    STREAM = "stream"


class ArtifactKind(str, Enum):
    """已保存产物类型（每种一个集合）。"""

    OUTLINES = "outlines"
    ARTICLES = "articles"
    MARKDOWNS = "markdowns"


@dataclass
class OutlineSection:
    """构成案中的一个章节（H2）及其要点。"""

    heading: str
    bullets: list[str] = field(default_factory=list)


@dataclass
class Outline:
    """文章构成案。"""

    title: str
    sections: list[OutlineSection]

    def headings(self) -> list[str]:
        return [s.heading for s in self.sections]

    def copy(self) -> Outline:
        # 值拷贝：保存后的快照不受后续编辑影响
        return Outline(
            title=self.title,
            sections=[OutlineSection(heading=s.heading, bullets=list(s.bullets)) for s in self.sections],
        )

    def to_payload(self) -> dict[str, Any]:
        """转换为模型/存储使用的 JSON 结构。"""
        return {
            "title": self.title,
            "outline": [
                {"section": s.heading, "subsections": list(s.bullets)} for s in self.sections
            ],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Outline:
        return cls(
            title=str(payload.get("title") or ""),
            sections=[
                OutlineSection(
                    heading=str(item.get("section") or ""),
                    bullets=[str(b) for b in (item.get("subsections") or [])],
                )
                for item in (payload.get("outline") or [])
            ],
        )


# 章节标题 -> 正文；插入顺序即大纲顺序
ArticleContent = dict[str, str]
