"""连接管理

每个工作区一个 LanceDB 连接，惰性创建，并发首次调用只打开一次。
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import lancedb

from config.logging import get_logger
from .errors import StoreConnectionError
from .workspace import WorkspaceState, run_shared


logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ConnectionManager:
    """Opens and caches the embedded database connection of each workspace."""

    def __init__(self, private_dir: str, connect: Optional[Connector] = None):
        """Initialize the connection manager.

        Args:
            private_dir: Store directory, relative to the workspace root.
            connect: Coroutine function opening a database at a path.
                Defaults to ``lancedb.connect_async``.
        """
        self.private_dir = private_dir
        self._connect = connect or lancedb.connect_async
        self._opening: Dict[str, "asyncio.Task"] = {}

    async def ensure_open(self, state: WorkspaceState) -> Any:
        """Return the workspace connection, opening it on first use."""
        if state.connection is not None:
            return state.connection
        return await run_shared(self._opening, state.key.root, lambda: self._open(state))

    async def _open(self, state: WorkspaceState) -> Any:
        db_path = state.key.store_path(self.private_dir)
        try:
            db_path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"[VECTOR] Connecting to LanceDB at: {db_path}")
            connection = await self._connect(str(db_path))
        except Exception as e:
            logger.error(f"[VECTOR] Initialization failed for {state.key.root}: {e}")
            state.connection = None
            raise StoreConnectionError(state.key.root, str(e)) from e

        state.connection = connection
        state.initialized = True
        # Later calls short-circuit on state.connection
        self._opening.pop(state.key.root, None)
        logger.info(f"[VECTOR] Store opened for workspace {state.key.root}")
        return connection

    def close(self, state: WorkspaceState) -> None:
        connection = state.connection
        state.connection = None
        state.initialized = False
        if connection is not None:
            connection.close()


async def list_table_names(connection: Any) -> List[str]:
    """Names of every table in a workspace store, following pagination."""
    names: List[str] = []
    page_token = None
    while True:
        response = await connection.list_tables(page_token=page_token)
        names.extend(getattr(response, "tables", response))
        next_token = getattr(response, "page_token", None)
        if not next_token or next_token == page_token:
            return names
        page_token = next_token
