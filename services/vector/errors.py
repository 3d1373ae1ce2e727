"""向量存储异常

只有连接失败、嵌入失败和未知集合类型会传播给调用方，其余失败在本地降级处理。
"""
from typing import Optional


class VectorStoreError(Exception):
    """Base class for vector store errors."""


class StoreConnectionError(VectorStoreError):
    """Opening the workspace store failed. The next call retries."""

    def __init__(self, workspace_root: str, message: str):
        super().__init__(f"Failed to open vector store for {workspace_root}: {message}")
        self.workspace_root = workspace_root


class UnknownCollectionError(VectorStoreError, ValueError):
    """Collection type is not present in the configured collection list."""

    def __init__(self, collection_type: str):
        super().__init__(f"Unknown collection type: {collection_type!r}")
        self.collection_type = collection_type


class EmbeddingError(VectorStoreError):
    """Embedding a record or query failed.

    Attributes:
        index: Position of the record in the ingestion batch, None for queries.
        record_id: Identifier of the failing record, if any.
        collection_type: Collection type the embedding was requested for.
    """

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        record_id: Optional[str] = None,
        collection_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.index = index
        self.record_id = record_id
        self.collection_type = collection_type
