"""集合管理

为每个 (工作区, 集合类型) 打开或创建物理集合，校验向量维度，维度变化时删除重建。
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pyarrow as pa

from config.logging import get_logger
from config.settings import CollectionConfig
from .connection import list_table_names
from .errors import UnknownCollectionError
from .records import VECTOR_COLUMN, build_schema, seed_row
from .workspace import WorkspaceState, run_shared


logger = get_logger(__name__)


@dataclass
class CollectionHandle:
    """An opened physical collection."""

    collection_type: str
    name: str
    dimension: int
    table: Any


def vector_width(schema: pa.Schema) -> Optional[int]:
    """Declared fixed width of the vector column, or None if it has none."""
    try:
        vector_type = schema.field(VECTOR_COLUMN).type
    except KeyError:
        return None
    return getattr(vector_type, "list_size", None)


def _is_already_exists(error: Exception) -> bool:
    return "already exists" in str(error).lower()


class CollectionProvisioner:
    """Resolves, opens, creates and migrates collections."""

    def __init__(self, collections: Dict[str, CollectionConfig], embedder: Any):
        """Initialize the provisioner.

        Args:
            collections: Collection type -> configuration.
            embedder: Embedding collaborator providing ``get_dimension``.
        """
        self.collections = collections
        self.embedder = embedder

    def config_for(self, collection_type: str) -> CollectionConfig:
        config = self.collections.get(collection_type)
        if config is None:
            raise UnknownCollectionError(collection_type)
        return config

    def physical_name(self, state: WorkspaceState, collection_type: str) -> str:
        return state.key.physical_name(self.config_for(collection_type).table)

    async def ensure_collection(
        self,
        state: WorkspaceState,
        connection: Any,
        collection_type: str,
    ) -> CollectionHandle:
        """Open or create the collection for a workspace and collection type.

        Concurrent calls for the same physical name share one provisioning
        attempt. A cached handle whose dimension no longer matches the
        embedding model is evicted and provisioned again.
        """
        name = self.physical_name(state, collection_type)

        handle = await run_shared(
            state.collection_tasks,
            name,
            lambda: self._provision(state, connection, collection_type, name),
        )

        expected = await self.embedder.get_dimension(collection_type)
        if handle.dimension == expected:
            return handle

        logger.warning(
            f"[VECTOR] Embedding dimension for {collection_type} changed "
            f"({handle.dimension} → {expected}), reprovisioning {name}"
        )
        task = state.collection_tasks.get(name)
        if (
            task is not None
            and task.done()
            and not task.cancelled()
            and task.exception() is None
            and task.result() is handle
        ):
            del state.collection_tasks[name]
            state.indexed.discard(collection_type)

        return await run_shared(
            state.collection_tasks,
            name,
            lambda: self._provision(state, connection, collection_type, name),
        )

    async def _provision(
        self,
        state: WorkspaceState,
        connection: Any,
        collection_type: str,
        name: str,
    ) -> CollectionHandle:
        expected = await self.embedder.get_dimension(collection_type)

        table_names = await list_table_names(connection)
        if name in table_names:
            logger.debug(f"[VECTOR] Opening existing table {name} (expected dim: {expected})")
            table = await connection.open_table(name)
            current = vector_width(await table.schema())

            if current == expected:
                return CollectionHandle(collection_type, name, expected, table)

            logger.warning(
                f"[VECTOR] Dimension mismatch in {name}: {current} → {expected}. Recreating."
            )
            await connection.drop_table(name)
            state.indexed.discard(collection_type)

        return await self._create(connection, collection_type, name, expected)

    async def _create(
        self,
        connection: Any,
        collection_type: str,
        name: str,
        dimension: int,
    ) -> CollectionHandle:
        logger.debug(f"[VECTOR] Creating new table: {name} (dim: {dimension})")
        try:
            table = await connection.create_table(
                name,
                data=[seed_row(collection_type, dimension)],
                schema=build_schema(dimension),
            )
        except Exception as e:
            if not _is_already_exists(e):
                raise
            logger.debug(f"[VECTOR] Table {name} created concurrently, opening it")
            table = await connection.open_table(name)
            dimension = vector_width(await table.schema()) or dimension

        return CollectionHandle(collection_type, name, dimension, table)
