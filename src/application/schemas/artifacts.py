"""已保存产物 Pydantic 模型。

存储结构与浏览器端 localStorage 时代保持一致（`createdAt` 为毫秒时间戳），
便于直接导入旧数据。
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OutlineSectionPayload(BaseModel):
    """构成案章节。"""

    section: str = Field(..., description="章节标题（H2）")
    subsections: list[str] = Field(default_factory=list, description="章节要点")


class OutlinePayload(BaseModel):
    """构成案（模型输出 / 存储共用结构）。"""

    title: str = Field(..., description="文章标题")
    outline: list[OutlineSectionPayload] = Field(..., description="章节列表")


class _SavedRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="记录 ID（创建后不变）")
    created_at: int = Field(..., alias="createdAt", description="创建时间（毫秒时间戳）")


class SavedOutline(_SavedRecord, OutlinePayload):
    """已保存的构成案。"""


class ArticleContentPart(BaseModel):
    """文章中一个章节的正文。"""

    section: str
    content: str


class SavedArticle(_SavedRecord):
    """已保存的文章：构成案快照 + 按章节的正文。"""

    outline: OutlinePayload
    content: list[ArticleContentPart] = Field(default_factory=list)


class SavedMarkdown(_SavedRecord):
    """已保存的 Markdown 文档。"""

    title: str
    content: str
