"""向量检索引擎

将查询扇出到多个集合，按集合维度重新嵌入，距离归一化为相似度后去重排序。

特性:
    - 各集合并发检索，单个集合失败不影响其他集合
    - 余弦距离 [0, 2] 映射到相似度 [0, 1]
    - 种子记录永不返回
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from config.logging import get_logger
from .collections import CollectionProvisioner
from .errors import EmbeddingError, VectorStoreError
from .records import RankedHit, is_seed_id, quote_filter
from .workspace import WorkspaceState


logger = get_logger(__name__)

CollectionSelector = Union[None, str, Sequence[str]]


class SearchEngine:
    """Fan-out nearest-neighbour search across collection types."""

    def __init__(
        self,
        provisioner: CollectionProvisioner,
        embedder: Any,
        searchable_types: Sequence[str],
        distance_type: str = "cosine",
        nprobes: int = 20,
        refine_factor: Optional[int] = 10,
    ):
        self.provisioner = provisioner
        self.embedder = embedder
        self.searchable_types = list(searchable_types)
        self.distance_type = distance_type
        self.nprobes = nprobes
        self.refine_factor = refine_factor

    def target_types(self, types: CollectionSelector) -> List[str]:
        """Resolve a selector (None, 'all', one type or a list) to collection types."""
        if types is None or types == "all":
            return list(self.searchable_types)
        if isinstance(types, str):
            types = [types]
        for collection_type in types:
            self.provisioner.config_for(collection_type)
        return list(dict.fromkeys(types))

    async def search(
        self,
        state: WorkspaceState,
        connection: Any,
        query: str,
        limit: int,
        types: CollectionSelector = None,
        filter: Optional[str] = None,
    ) -> List[RankedHit]:
        """Search the selected collections and return hits ranked by similarity.

        Args:
            state: Workspace state.
            connection: Open workspace connection.
            query: Query text.
            limit: Maximum hits, also the per-collection candidate count.
            types: Collection selector; None or 'all' means every searchable type.
            filter: Optional SQL filter expression applied to every collection.

        Returns:
            Hits sorted by descending score, at most ``limit`` of them.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            UnknownCollectionError: If a selected type is not configured.
        """
        targets = self.target_types(types)
        if not targets:
            return []

        try:
            query_vector = await self.embedder.embed(query)
        except VectorStoreError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to embed search query: {e}") from e

        logger.debug(
            f"[SEARCH] Executing search in {state.key.root} for: '{query[:50]}' "
            f"(limit: {limit}, tables: {', '.join(targets)})"
        )

        batches = await asyncio.gather(
            *(
                self._search_collection(state, connection, t, query, query_vector, limit, filter)
                for t in targets
            )
        )

        best: Dict[Tuple[str, str], RankedHit] = {}
        for collection_type, rows in zip(targets, batches):
            for row in rows:
                if is_seed_id(row.get("id")):
                    continue
                hit = RankedHit.from_row(row, collection_type)
                key = (collection_type, hit.id)
                if key not in best or hit.score > best[key].score:
                    best[key] = hit

        ranked = sorted(best.values(), key=lambda h: h.score, reverse=True)[:limit]

        if ranked:
            logger.debug(f"[SEARCH] Found {len(ranked)} results for: '{query[:50]}'")
        return ranked

    async def _search_collection(
        self,
        state: WorkspaceState,
        connection: Any,
        collection_type: str,
        query: str,
        query_vector: List[float],
        limit: int,
        filter: Optional[str],
    ) -> List[Dict[str, Any]]:
        try:
            handle = await self.provisioner.ensure_collection(state, connection, collection_type)

            dimension = await self.embedder.get_dimension(collection_type)
            vector = query_vector
            if len(query_vector) != dimension:
                logger.debug(
                    f"[SEARCH] Query dim mismatch for {collection_type} "
                    f"({len(query_vector)} vs {dimension}), re-embedding"
                )
                vector = await self.embedder.embed(query, collection_type)

            # Ignored without an index; with one, candidates are re-ranked by exact distance
            builder = (
                handle.table.vector_search(vector)
                .distance_type(self.distance_type)
                .nprobes(self.nprobes)
            )
            if self.refine_factor:
                builder = builder.refine_factor(self.refine_factor)
            if filter:
                builder = builder.where(quote_filter(filter))
            result = await builder.limit(limit).to_arrow()
            return result.to_pylist()
        except Exception as e:
            logger.error(f"[SEARCH] Search failed for table {collection_type} in {state.key.root}: {e}")
            return []
