"""
Tests for workspace identity, the registry and shared in-flight tasks.
"""

import asyncio
import os

import pytest

from services.vector.workspace import WorkspaceRegistry, resolve_workspace, run_shared


class TestWorkspaceIdentity:

    def test_distinct_roots_never_share_physical_names(self, tmp_path):
        keys = [resolve_workspace(str(tmp_path / f"ws{i}")) for i in range(20)]
        names = {k.physical_name("code_vectors") for k in keys}
        assert len(names) == 20

    def test_equivalent_paths_resolve_to_same_key(self, tmp_path):
        root = tmp_path / "ws"
        root.mkdir()
        a = resolve_workspace(str(root))
        b = resolve_workspace(str(root) + os.sep)
        c = resolve_workspace(str(root / "sub" / ".."))
        assert a == b == c
        assert len(a.digest) == 8

    def test_store_path_is_under_workspace(self, tmp_path):
        key = resolve_workspace(str(tmp_path))
        assert key.store_path(".hifide-private/vectors") == tmp_path.resolve() / ".hifide-private" / "vectors"


class TestRegistry:

    def test_same_state_per_workspace(self, tmp_path):
        registry = WorkspaceRegistry(["code", "kb"])
        first = registry.get(str(tmp_path))
        assert registry.get(str(tmp_path)) is first
        assert set(first.status.tables) == {"code", "kb"}
        assert not first.initialized

    def test_snapshot_shape(self, tmp_path):
        state = WorkspaceRegistry(["code"]).get(str(tmp_path))
        snapshot = state.snapshot()
        assert snapshot["workspace_id"] == state.key.root
        assert snapshot["status"]["tables"]["code"] == {"count": 0, "indexed_at": None, "exists": False}

    def test_clear(self, tmp_path):
        registry = WorkspaceRegistry(["code"])
        registry.get(str(tmp_path))
        registry.clear()
        assert registry.states() == []


class TestRunShared:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self):
        tasks = {}
        runs = []

        async def factory():
            runs.append(1)
            await asyncio.sleep(0.01)
            return object()

        results = await asyncio.gather(*(run_shared(tasks, "k", factory) for _ in range(10)))
        assert len(runs) == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_failure_reaches_all_waiters_and_is_evicted(self):
        tasks = {}
        attempts = []

        async def factory():
            attempts.append(1)
            await asyncio.sleep(0)
            if len(attempts) == 1:
                raise RuntimeError("first attempt fails")
            return "ok"

        results = await asyncio.gather(
            *(run_shared(tasks, "k", factory) for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert "k" not in tasks

        assert await run_shared(tasks, "k", factory) == "ok"
        assert len(attempts) == 2
