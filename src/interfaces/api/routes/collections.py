"""已保存产物 API 路由。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from src.application.services.collection_store import CollectionStores
from src.application.services.content_generation.types import ArtifactKind
from src.interfaces.api.deps import get_collection_stores
from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)

router = APIRouter()


@router.get("/collections/{kind}")
def list_collection(kind: ArtifactKind, stores: CollectionStores = Depends(get_collection_stores)):
    """按创建时间倒序列出某类已保存产物。"""
    records = stores.for_kind(kind).get()
    return {
        "kind": kind.value,
        "items": [r.model_dump(mode="json", by_alias=True) for r in records],
        "total": len(records),
    }


@router.delete("/collections/{kind}/{record_id}")
def delete_collection_item(
    kind: ArtifactKind,
    record_id: str,
    stores: CollectionStores = Depends(get_collection_stores),
):
    store = stores.for_kind(kind)
    records = store.get()
    remaining = [r for r in records if r.id != record_id]
    if len(remaining) == len(records):
        raise HTTPException(status_code=404, detail="record not found")
    store.set(remaining)
    log.info("record_deleted", extra=log_extra(kind=kind.value, record_id=record_id))
    return {"deleted": record_id}
