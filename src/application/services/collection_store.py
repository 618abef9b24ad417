"""已保存产物集合存储。

每种产物（构成案 / 文章 / Markdown）对应一个 key，value 是整张列表：
- get(): 读取整张列表，按创建时间倒序；存储不可用时返回空列表
- set(): 整表替换；失败只记录日志，不向调用方抛出

并发写入按最后写入为准（单会话场景下不会发生）。
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Generic, Protocol, TypeVar

from src.application.repositories.collection_entry_repository import CollectionEntryRepository
from src.application.schemas.artifacts import SavedArticle, SavedMarkdown, SavedOutline
from src.application.services.content_generation.types import ArtifactKind
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

STORAGE_KEY_PREFIX = "ai-outline-generator-saved"

STORAGE_KEYS: dict[ArtifactKind, str] = {
    ArtifactKind.OUTLINES: f"{STORAGE_KEY_PREFIX}-outlines",
    ArtifactKind.ARTICLES: f"{STORAGE_KEY_PREFIX}-articles",
    ArtifactKind.MARKDOWNS: f"{STORAGE_KEY_PREFIX}-markdowns",
}

RECORD_MODELS: dict[ArtifactKind, type] = {
    ArtifactKind.OUTLINES: SavedOutline,
    ArtifactKind.ARTICLES: SavedArticle,
    ArtifactKind.MARKDOWNS: SavedMarkdown,
}

RecordT = TypeVar("RecordT", SavedOutline, SavedArticle, SavedMarkdown)


class KeyValueBackend(Protocol):
    """键值存储协议（get/set 整值）。"""

    def get_value(self, key: str) -> list[dict[str, Any]] | None: ...

    def set_value(self, key: str, value: list[dict[str, Any]]) -> None: ...


class SqlKeyValueBackend:
    """基于 SQLite（SQLAlchemy）的键值存储；每次操作独立会话。"""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get_value(self, key: str) -> list[dict[str, Any]] | None:
        with self._session_factory() as session:
            return CollectionEntryRepository(session).get_value(key)

    def set_value(self, key: str, value: list[dict[str, Any]]) -> None:
        with self._session_factory() as session:
            CollectionEntryRepository(session).set_value(key, value)


class CollectionStore(Generic[RecordT]):
    """单种产物的集合存储。"""

    def __init__(self, kind: ArtifactKind, backend: KeyValueBackend):
        self.kind = kind
        self.key = STORAGE_KEYS[kind]
        self._model = RECORD_MODELS[kind]
        self._backend = backend

    def get(self) -> list[RecordT]:
        try:
            raw = self._backend.get_value(self.key)
            if not raw:
                return []
            records = [self._model.model_validate(item) for item in raw]
        except Exception:
            log.exception("collection_read_failed", extra=log_extra(key=self.key))
            return []
        # 按创建时间倒序（最新在前）
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def set(self, records: list[RecordT]) -> None:
        try:
            payload = [r.model_dump(mode="json", by_alias=True) for r in records]
            self._backend.set_value(self.key, payload)
        except Exception:
            log.exception("collection_write_failed", extra=log_extra(key=self.key, count=len(records)))
            return
        log.info("collection_written", extra=log_extra(key=self.key, count=len(records)))


class CollectionStores:
    """三种产物集合的聚合。"""

    def __init__(self, backend: KeyValueBackend):
        self.outlines: CollectionStore[SavedOutline] = CollectionStore(ArtifactKind.OUTLINES, backend)
        self.articles: CollectionStore[SavedArticle] = CollectionStore(ArtifactKind.ARTICLES, backend)
        self.markdowns: CollectionStore[SavedMarkdown] = CollectionStore(ArtifactKind.MARKDOWNS, backend)

    def for_kind(self, kind: ArtifactKind) -> CollectionStore:
        return {
            ArtifactKind.OUTLINES: self.outlines,
            ArtifactKind.ARTICLES: self.articles,
            ArtifactKind.MARKDOWNS: self.markdowns,
        }[kind]


def now_millis() -> int:
    return int(time.time() * 1000)


def new_record_id(created_at: int | None = None) -> str:
    """记录 ID：毫秒时间戳 + 短随机后缀，保证同一毫秒内唯一。"""
    ts = created_at if created_at is not None else now_millis()
    return f"{ts}-{uuid.uuid4().hex[:8]}"
