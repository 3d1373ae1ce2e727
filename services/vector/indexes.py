"""ANN 索引管理

决定、缓存并执行向量列上的 IVF-PQ 索引构建。
"""
from typing import Any

from lancedb.index import IvfPq

from config.logging import get_logger
from config.settings import IndexConfig
from .records import VECTOR_COLUMN
from .workspace import WorkspaceState


logger = get_logger(__name__)


def _is_already_indexed(error: Exception) -> bool:
    message = str(error).lower()
    return "already exists" in message or "already indexed" in message


def _covers_vector(index: Any) -> bool:
    columns = getattr(index, "columns", None) or []
    return VECTOR_COLUMN in columns or getattr(index, "name", None) == f"{VECTOR_COLUMN}_idx"


class AnnIndexManager:
    """Builds at most one ANN index per collection.

    Indexed collection types are remembered per workspace for the session,
    so repeated calls after the first success do no disk I/O.
    """

    def __init__(self, config: IndexConfig):
        self.config = config

    async def ensure_index(self, state: WorkspaceState, table: Any, collection_type: str) -> None:
        """Create the vector index if it is missing and the table is large enough."""
        root = state.key.root
        if collection_type in state.indexed:
            logger.debug(f"[INDEX] {collection_type} in {root} already indexed (cached)")
            return

        # Listing is an optimization only; fall through on any failure
        try:
            indices = await table.list_indices()
            if any(_covers_vector(idx) for idx in indices):
                logger.debug(f"[INDEX] {collection_type} in {root} already indexed (listed)")
                state.indexed.add(collection_type)
                return
        except Exception as e:
            logger.debug(f"[INDEX] Could not list indices for {collection_type} in {root}: {e}")

        row_count = await table.count_rows()
        if row_count < self.config.min_rows:
            logger.debug(
                f"[INDEX] Skipping index for {collection_type} in {root}: "
                f"only {row_count} rows (requires {self.config.min_rows})"
            )
            return

        logger.info(f"[INDEX] Creating ANN index for {collection_type} in {root} (rows: {row_count})")
        try:
            await table.create_index(
                VECTOR_COLUMN,
                config=IvfPq(
                    distance_type=self.config.distance_type,
                    num_partitions=self.config.num_partitions,
                    num_sub_vectors=self.config.num_sub_vectors,
                ),
            )
        except Exception as e:
            if _is_already_indexed(e):
                logger.debug(f"[INDEX] Index for {collection_type} in {root} built concurrently")
                state.indexed.add(collection_type)
            else:
                logger.warning(f"[INDEX] Failed to create index for {collection_type} in {root}: {e}")
            return

        state.indexed.add(collection_type)
        logger.info(f"[INDEX] Created ANN index for {collection_type} in {root}")
