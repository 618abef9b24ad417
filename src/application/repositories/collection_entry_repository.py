"""集合键值仓储层。"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from src.domain.entities.collection_entry import CollectionEntry


class CollectionEntryRepository:
    """集合键值仓储类。"""

    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str) -> list[dict[str, Any]] | None:
        """读取指定 key 的整张列表；不存在时返回 None。"""
        entry = self.db.get(CollectionEntry, key)
        if entry is None:
            return None
        return entry.value

    def set_value(self, key: str, value: list[dict[str, Any]]) -> None:
        """整表替换写入。"""
        entry = self.db.get(CollectionEntry, key)
        if entry is None:
            entry = CollectionEntry(key=key, value=value)
        else:
            entry.value = value
        self.db.add(entry)
        self.db.commit()
