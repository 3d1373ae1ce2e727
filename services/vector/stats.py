"""状态与统计

维护每个工作区的集合统计与索引进度，并在变化时通知外部接收器。
"""
import math
import time
from typing import Any, Optional, Sequence

from config.logging import get_logger
from .connection import list_table_names
from .records import SEED_PREFIX
from .workspace import SourceProgress, TableStatus, WorkspaceState


logger = get_logger(__name__)

CHANGED_EVENT = "vector_service.changed"

NON_SEED_FILTER = f"id NOT LIKE '{SEED_PREFIX}%'"


class StatusTracker:
    """Collection statistics and indexing progress for workspaces."""

    def __init__(self, provisioner: Any, collection_types: Sequence[str], notifier: Optional[Any] = None):
        self.provisioner = provisioner
        self.collection_types = list(collection_types)
        self.notifier = notifier

    async def refresh_stats(self, state: WorkspaceState, connection: Any) -> None:
        """Recompute existence and row counts (seed rows excluded) of every collection."""
        try:
            existing = set(await list_table_names(connection))
            for collection_type in self.collection_types:
                name = self.provisioner.physical_name(state, collection_type)
                if name in existing:
                    table = await connection.open_table(name)
                    count = await table.count_rows(NON_SEED_FILTER)
                    state.status.tables[collection_type] = TableStatus(
                        count=count, indexed_at=time.time(), exists=True
                    )
                else:
                    state.status.tables[collection_type] = TableStatus()
        except Exception as e:
            logger.error(f"[VECTOR] Failed to refresh stats for {state.key.root}: {e}")

        self.notify(state)

    def start_indexing(self, state: WorkspaceState, collection_type: str = "all") -> None:
        status = state.status
        status.indexing = True
        status.active_table = collection_type
        status.reset_progress()
        logger.info(f"[VECTOR] Indexing started for {state.key.root} ({collection_type})")
        self.notify(state)

    async def update_progress(
        self,
        state: WorkspaceState,
        connection: Any,
        source: str,
        indexed: int,
        total: int,
    ) -> None:
        """Record progress for one source and recompute the aggregate.

        Indexing is finished exactly when every tracked source reports
        ``indexed >= total``; stats are refreshed at that point.
        """
        status = state.status
        status.sources[source] = SourceProgress(indexed=max(0, int(indexed)), total=max(0, int(total)))

        status.indexed_files = sum(p.indexed for p in status.sources.values())
        status.total_files = sum(p.total for p in status.sources.values())
        if status.total_files > 0:
            status.progress = min(100, math.floor(status.indexed_files / status.total_files * 100))
        else:
            status.progress = 0

        was_indexing = status.indexing
        status.indexing = any(p.indexed < p.total for p in status.sources.values())

        if status.indexing:
            self.notify(state)
            return

        status.active_table = None
        state.last_indexed_at = time.time()
        if was_indexing:
            logger.info(
                f"[VECTOR] Indexing finished for {state.key.root} "
                f"({status.indexed_files}/{status.total_files})"
            )
        if connection is not None:
            await self.refresh_stats(state, connection)
        else:
            self.notify(state)

    def notify(self, state: WorkspaceState) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(state.key.root, CHANGED_EVENT, state.snapshot())
        except Exception as e:
            logger.warning(f"[VECTOR] Notification failed for {state.key.root}: {e}")
