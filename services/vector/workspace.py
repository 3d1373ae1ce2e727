"""工作区状态

工作区标识解析、每个工作区的可变状态以及按工作区键控的注册表。
"""
import asyncio
import hashlib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar


T = TypeVar("T")


@dataclass(frozen=True)
class WorkspaceKey:
    """Canonical workspace identity.

    ``root`` is the resolved absolute path; ``digest`` is the first eight hex
    characters of its MD5, used to namespace physical collection names.
    """

    root: str
    digest: str

    def physical_name(self, base_name: str) -> str:
        return f"{base_name}_{self.digest}"

    def store_path(self, private_dir: str) -> Path:
        return Path(self.root) / private_dir


def resolve_workspace(workspace_root: str) -> WorkspaceKey:
    """Map a workspace root path to its stable identity."""
    normalized = str(Path(workspace_root).expanduser().resolve())
    digest = hashlib.md5(normalized.encode("utf-8")).hexdigest()[:8]
    return WorkspaceKey(root=normalized, digest=digest)


@dataclass
class TableStatus:
    count: int = 0
    indexed_at: Optional[float] = None
    exists: bool = False


@dataclass
class SourceProgress:
    indexed: int = 0
    total: int = 0


@dataclass
class IndexingStatus:
    indexing: bool = False
    progress: int = 0
    total_files: int = 0
    indexed_files: int = 0
    active_table: Optional[str] = None
    sources: Dict[str, SourceProgress] = field(default_factory=dict)
    tables: Dict[str, TableStatus] = field(default_factory=dict)

    def reset_progress(self) -> None:
        self.progress = 0
        self.total_files = 0
        self.indexed_files = 0
        self.sources = {}


@dataclass
class WorkspaceState:
    """Mutable state for one workspace, owned by a single VectorStore."""

    key: WorkspaceKey
    connection: Any = None
    collection_tasks: Dict[str, "asyncio.Task"] = field(default_factory=dict)
    deferred: Set[str] = field(default_factory=set)
    indexed: Set[str] = field(default_factory=set)
    initialized: bool = False
    last_indexed_at: Optional[float] = None
    status: IndexingStatus = field(default_factory=IndexingStatus)

    @property
    def indexing(self) -> bool:
        return self.status.indexing

    def snapshot(self) -> Dict[str, Any]:
        return {
            "workspace_id": self.key.root,
            "initialized": self.initialized,
            "indexing": self.status.indexing,
            "last_indexed_at": self.last_indexed_at,
            "status": asdict(self.status),
        }


class WorkspaceRegistry:
    """Workspace-keyed registry of WorkspaceState objects."""

    def __init__(self, collection_types):
        self._collection_types = list(collection_types)
        self._states: Dict[str, WorkspaceState] = {}

    def get(self, workspace_root: str) -> WorkspaceState:
        key = resolve_workspace(workspace_root)
        state = self._states.get(key.root)
        if state is None:
            state = WorkspaceState(key=key)
            state.status.tables = {t: TableStatus() for t in self._collection_types}
            self._states[key.root] = state
        return state

    def states(self):
        return list(self._states.values())

    def clear(self) -> None:
        self._states.clear()


async def run_shared(
    tasks: Dict[str, "asyncio.Task"],
    key: str,
    factory: Callable[[], Awaitable[T]],
) -> T:
    """Run ``factory`` at most once per key among concurrent callers.

    Every caller awaits the same task. A failed task is evicted so the next
    call starts over; the error reaches every waiter of that attempt.
    """
    task = tasks.get(key)
    if task is None:
        task = asyncio.ensure_future(factory())
        tasks[key] = task
    try:
        return await asyncio.shield(task)
    except BaseException:
        if task.done() and tasks.get(key) is task:
            if task.cancelled() or task.exception() is not None:
                del tasks[key]
        raise
