"""领域实体模块。"""

from .collection_entry import CollectionEntry

__all__ = [
    "CollectionEntry",
]
