from __future__ import annotations

from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from src.application.services.collection_store import CollectionStores
from src.application.services.content_generation.providers import ChatProvider


def get_db(request: Request) -> Iterator[Session]:
    session_factory = request.app.state.session_factory
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_collection_stores(request: Request) -> CollectionStores:
    return request.app.state.collection_stores


def get_proxy_provider(request: Request) -> ChatProvider | None:
    """代理端点使用的上游适配器；服务端未配置密钥时为 None。"""
    return request.app.state.proxy_provider
