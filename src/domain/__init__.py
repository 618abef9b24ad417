"""领域层（Domain）。"""

from .entities import CollectionEntry

__all__ = [
    "CollectionEntry",
]
