from __future__ import annotations

from pathlib import Path

from conftest import BrokenBackend, MemoryBackend
from src.application.schemas.artifacts import SavedMarkdown, SavedOutline
from src.application.services.collection_store import (
    STORAGE_KEYS,
    CollectionStore,
    CollectionStores,
    SqlKeyValueBackend,
    new_record_id,
)
from src.application.services.content_generation.types import ArtifactKind
from src.shared.db import init_db, make_engine, make_session_factory


def _outline_record(rid: str, created_at: int) -> SavedOutline:
    return SavedOutline(
        id=rid,
        created_at=created_at,
        title=f"title {rid}",
        outline=[{"section": "S", "subsections": ["x"]}],
    )


def test_get_sorts_by_created_at_descending(memory_backend: MemoryBackend):
    store = CollectionStore(ArtifactKind.OUTLINES, memory_backend)
    store.set([_outline_record("old", 1), _outline_record("new", 3), _outline_record("mid", 2)])

    assert [r.id for r in store.get()] == ["new", "mid", "old"]


def test_records_are_stored_with_camel_case_created_at(memory_backend: MemoryBackend):
    store = CollectionStore(ArtifactKind.OUTLINES, memory_backend)
    store.set([_outline_record("a", 10)])

    raw = memory_backend.data[STORAGE_KEYS[ArtifactKind.OUTLINES]]
    assert raw == [
        {
            "id": "a",
            "createdAt": 10,
            "title": "title a",
            "outline": [{"section": "S", "subsections": ["x"]}],
        }
    ]


def test_empty_store_reads_as_empty_list(memory_backend: MemoryBackend):
    assert CollectionStores(memory_backend).articles.get() == []


def test_storage_failures_are_swallowed():
    store = CollectionStore(ArtifactKind.MARKDOWNS, BrokenBackend())

    assert store.get() == []
    # 写入失败只记录日志，不抛出
    store.set([SavedMarkdown(id="m", created_at=1, title="t", content="c")])


def test_corrupted_payload_reads_as_empty_list(memory_backend: MemoryBackend):
    memory_backend.data[STORAGE_KEYS[ArtifactKind.OUTLINES]] = [{"id": "x"}]
    assert CollectionStore(ArtifactKind.OUTLINES, memory_backend).get() == []


def test_kinds_use_separate_keys(memory_backend: MemoryBackend):
    stores = CollectionStores(memory_backend)
    stores.markdowns.set([SavedMarkdown(id="m", created_at=1, title="t", content="c")])

    assert stores.outlines.get() == []
    assert [r.id for r in stores.for_kind(ArtifactKind.MARKDOWNS).get()] == ["m"]


def test_new_record_id_is_unique_within_same_millisecond():
    ids = {new_record_id(1700000000000) for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("1700000000000-") for i in ids)


def test_sqlite_backend_roundtrip(tmp_path: Path):
    engine = make_engine(tmp_path / "sqlite" / "store.db")
    init_db(engine)
    stores = CollectionStores(SqlKeyValueBackend(make_session_factory(engine)))

    stores.outlines.set([_outline_record("a", 1)])
    stores.outlines.set([_outline_record("b", 2), _outline_record("a", 1)])

    assert [r.id for r in stores.outlines.get()] == ["b", "a"]
    assert stores.outlines.get()[0].outline[0].subsections == ["x"]
