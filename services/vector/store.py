"""工作区向量存储

面向索引流水线、检索工具和状态界面的统一入口。

每个工作区拥有独立的嵌入式 LanceDB 库（位于工作区私有目录下），
按集合类型（code / kb / memories / tools ...）划分物理表。

特性:
    - 连接与集合创建按工作区去重，可被任意并发调用方安全使用
    - 嵌入维度变化时自动删除并重建集合
    - 行数达到阈值后自动构建 ANN 索引，支持批量导入时延迟索引
    - 多集合扇出检索，结果归一化为 [0, 1] 相似度
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from config.logging import get_logger
from config.settings import VectorStoreConfig
from .collections import CollectionHandle, CollectionProvisioner
from .connection import ConnectionManager, Connector, list_table_names
from .errors import EmbeddingError
from .indexes import AnnIndexManager
from .records import RankedHit, Record, quote_filter
from .search import SearchEngine
from .stats import NON_SEED_FILTER, StatusTracker
from .workspace import WorkspaceRegistry, WorkspaceState


logger = get_logger(__name__)


class VectorStore:
    """Per-workspace vector store engine.

    Owns the workspace registry and every cache in it; nothing outside this
    object mutates them.
    """

    def __init__(
        self,
        embedder: Any,
        config: Optional[VectorStoreConfig] = None,
        notifier: Optional[Any] = None,
        connect: Optional[Connector] = None,
    ):
        """Initialize the store.

        Args:
            embedder: Embedding collaborator with ``embed(text, collection_type=None)``
                and ``get_dimension(collection_type=None)`` coroutines.
            config: Store configuration, defaults to ``VectorStoreConfig()``.
            notifier: Optional sink receiving ``notify(workspace_id, event, payload)``.
            connect: Optional connector coroutine, defaults to ``lancedb.connect_async``.
        """
        self.config = config or VectorStoreConfig()
        self.embedder = embedder

        self.registry = WorkspaceRegistry(self.config.collection_types)
        self.connections = ConnectionManager(self.config.private_dir, connect)
        self.provisioner = CollectionProvisioner(self.config.collections, embedder)
        self.indexes = AnnIndexManager(self.config.index)
        self.engine = SearchEngine(
            self.provisioner,
            embedder,
            self.config.searchable_types,
            distance_type=self.config.index.distance_type,
            nprobes=self.config.index.nprobes,
            refine_factor=self.config.index.refine_factor,
        )
        self.tracker = StatusTracker(self.provisioner, self.config.collection_types, notifier)

    # ========== 连接与集合 ==========

    async def _open(self, workspace_root: str):
        state = self.registry.get(workspace_root)
        connection = await self.connections.ensure_open(state)
        return state, connection

    async def init(self, workspace_root: str) -> None:
        """Open the workspace store and publish its initial stats."""
        state, connection = await self._open(workspace_root)
        await self.tracker.refresh_stats(state, connection)

    async def ensure_collection(self, workspace_root: str, collection_type: str) -> CollectionHandle:
        state, connection = await self._open(workspace_root)
        return await self.provisioner.ensure_collection(state, connection, collection_type)

    async def _existing_collection(
        self,
        state: WorkspaceState,
        connection: Any,
        collection_type: str,
    ) -> Optional[CollectionHandle]:
        name = self.provisioner.physical_name(state, collection_type)
        if name not in await list_table_names(connection):
            return None
        return await self.provisioner.ensure_collection(state, connection, collection_type)

    # ========== 写入 ==========

    async def upsert(self, workspace_root: str, records: List[Record], collection_type: str = "code") -> None:
        """Embed records and append them to a collection.

        All embeddings are computed before anything is written; one failure
        aborts the whole batch.

        Args:
            workspace_root: Workspace root path.
            records: Records to ingest.
            collection_type: Target collection type.

        Raises:
            EmbeddingError: If any record fails to embed or has the wrong width.
            UnknownCollectionError: If the collection type is not configured.
            StoreConnectionError: If the workspace store cannot be opened.
        """
        self.provisioner.config_for(collection_type)
        if not records:
            return

        state, connection = await self._open(workspace_root)
        handle = await self.provisioner.ensure_collection(state, connection, collection_type)

        results = await asyncio.gather(
            *(self.embedder.embed(record.text, collection_type) for record in records),
            return_exceptions=True,
        )

        rows = []
        for index, (record, vector) in enumerate(zip(records, results)):
            if isinstance(vector, BaseException):
                logger.error(
                    f"[VECTOR] Embedding failed for item {index} (id: {record.id}) in {collection_type}: {vector}"
                )
                raise EmbeddingError(
                    f"Failed to embed item {index} (id: {record.id}): {vector}",
                    index=index,
                    record_id=record.id,
                    collection_type=collection_type,
                ) from vector
            if len(vector) != handle.dimension:
                raise EmbeddingError(
                    f"Embedding for item {index} (id: {record.id}) has {len(vector)} dimensions, "
                    f"collection {handle.name} expects {handle.dimension}",
                    index=index,
                    record_id=record.id,
                    collection_type=collection_type,
                )
            rows.append(record.to_row(collection_type, vector))

        await handle.table.add(rows)
        logger.debug(f"[VECTOR] Added {len(rows)} items to {handle.name}")

        if collection_type not in state.deferred:
            await self.indexes.ensure_index(state, handle.table, collection_type)

        await self.tracker.refresh_stats(state, connection)

    async def delete_items(self, workspace_root: str, collection_type: str, filter: str) -> None:
        """Delete rows matching a filter expression. Failures are logged only."""
        self.provisioner.config_for(collection_type)
        state, connection = await self._open(workspace_root)
        try:
            handle = await self._existing_collection(state, connection, collection_type)
            if handle is not None:
                await handle.table.delete(quote_filter(filter))
                logger.debug(f"[VECTOR] Deleted items from {handle.name} where {filter}")
        except Exception as e:
            logger.warning(f"[VECTOR] Failed to delete items from {collection_type} in {state.key.root}: {e}")

        await self.tracker.refresh_stats(state, connection)

    async def purge(self, workspace_root: str, collection_type: Optional[str] = None) -> None:
        """Drop one collection, or every configured collection when no type is given."""
        if collection_type is None:
            targets = self.config.collection_types
        else:
            self.provisioner.config_for(collection_type)
            targets = [collection_type]

        state, connection = await self._open(workspace_root)
        for t in targets:
            name = self.provisioner.physical_name(state, t)
            try:
                await connection.drop_table(name)
                logger.info(f"[VECTOR] Dropped table {name}")
            except Exception as e:
                logger.warning(f"[VECTOR] Could not drop table {name} (may not exist): {e}")
            state.collection_tasks.pop(name, None)
            state.indexed.discard(t)

        state.status.reset_progress()
        await self.tracker.refresh_stats(state, connection)

    # ========== 索引 ==========

    def begin_deferred_indexing(self, workspace_root: str, collection_type: str) -> None:
        """Skip automatic index creation for a type until ``end_deferred_indexing``."""
        self.provisioner.config_for(collection_type)
        state = self.registry.get(workspace_root)
        state.deferred.add(collection_type)
        logger.debug(f"[INDEX] Deferring index creation for {collection_type} in {state.key.root}")

    async def end_deferred_indexing(self, workspace_root: str, collection_type: str) -> None:
        self.provisioner.config_for(collection_type)
        state, connection = await self._open(workspace_root)
        state.deferred.discard(collection_type)
        logger.debug(f"[INDEX] Finishing deferred indexing for {collection_type} in {state.key.root}")

        handle = await self.provisioner.ensure_collection(state, connection, collection_type)
        await self.indexes.ensure_index(state, handle.table, collection_type)
        await self.tracker.refresh_stats(state, connection)

    # ========== 检索 ==========

    async def search(
        self,
        workspace_root: str,
        query: str,
        limit: Optional[int] = None,
        types: Union[None, str, Sequence[str]] = "all",
        filter: Optional[str] = None,
    ) -> List[RankedHit]:
        """Nearest-neighbour search over one, several or all searchable collections."""
        safe_limit = max(1, int(limit or self.config.default_limit))
        state, connection = await self._open(workspace_root)
        return await self.engine.search(state, connection, query, safe_limit, types, filter)

    async def get_indexed_paths(self, workspace_root: str, collection_type: str = "code") -> Set[str]:
        """Distinct non-empty file paths stored in a collection."""
        self.provisioner.config_for(collection_type)
        state, connection = await self._open(workspace_root)
        try:
            handle = await self._existing_collection(state, connection, collection_type)
            if handle is None:
                return set()
            result = await handle.table.query().where(NON_SEED_FILTER).select(["filePath"]).to_arrow()
            return {row["filePath"] for row in result.to_pylist() if row.get("filePath")}
        except Exception as e:
            logger.error(f"[VECTOR] Failed to get indexed paths for {collection_type} in {state.key.root}: {e}")
            return set()

    # ========== 状态 ==========

    def start_indexing(self, workspace_root: str, collection_type: str = "all") -> None:
        if collection_type != "all":
            self.provisioner.config_for(collection_type)
        self.tracker.start_indexing(self.registry.get(workspace_root), collection_type)

    async def update_progress(self, workspace_root: str, source: str, indexed: int, total: int) -> None:
        state, connection = await self._open(workspace_root)
        await self.tracker.update_progress(state, connection, source, indexed, total)

    async def refresh_stats(self, workspace_root: str) -> None:
        state, connection = await self._open(workspace_root)
        await self.tracker.refresh_stats(state, connection)

    def get_state(self, workspace_root: str) -> Dict[str, Any]:
        return self.registry.get(workspace_root).snapshot()

    async def close(self) -> None:
        """Close every workspace connection and forget all workspace state."""
        for state in self.registry.states():
            for task in state.collection_tasks.values():
                if not task.done():
                    task.cancel()
            try:
                self.connections.close(state)
            except Exception as e:
                logger.warning(f"[VECTOR] Failed to close store for {state.key.root}: {e}")
        self.registry.clear()
        logger.info("[VECTOR] Vector store closed")
