"""工作区向量存储引擎"""
from .errors import EmbeddingError, StoreConnectionError, UnknownCollectionError, VectorStoreError
from .records import RankedHit, Record, similarity_from_distance
from .store import VectorStore
from .workspace import resolve_workspace

__all__ = [
    "VectorStore",
    "Record",
    "RankedHit",
    "VectorStoreError",
    "StoreConnectionError",
    "EmbeddingError",
    "UnknownCollectionError",
    "resolve_workspace",
    "similarity_from_distance",
]
