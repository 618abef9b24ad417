"""已保存产物集合实体（键值存储）。"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ...shared.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionEntry(Base):
    """集合键值表。

    每个产物类型（构成案/文章/Markdown）占一行，value 为整张列表的 JSON。
    读写均为整表替换，不做行级更新。
    """

    __tablename__ = "collection_entries"

    key: Mapped[str] = mapped_column(
        String(255), primary_key=True
    )  # 存储 key，如 ai-outline-generator-saved-outlines
    value: Mapped[list | None] = mapped_column(JSON, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
