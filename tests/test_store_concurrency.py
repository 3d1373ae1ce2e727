"""
VectorStore behaviour that needs counted side effects: deferred indexing,
failure isolation, deduplication and progress tracking, run against the
in-memory connection doubles.
"""

import asyncio

import pytest

from services.notifier import CallbackNotifier
from services.vector import EmbeddingError, VectorStore

from tests.fakes import make_records


@pytest.fixture
def events():
    return []


@pytest.fixture
def store(embedder, store_config, connector, events):
    notifier = CallbackNotifier(lambda ws, name, payload: events.append((ws, name, payload)))
    return VectorStore(embedder, store_config, notifier=notifier, connect=connector)


async def table_for(store, workspace, collection_type="code"):
    return (await store.ensure_collection(workspace, collection_type)).table


@pytest.mark.asyncio
async def test_concurrent_first_use_opens_and_creates_once(store, workspace, connector):
    await asyncio.gather(
        store.upsert(workspace, make_records(3), "code"),
        store.search(workspace, "rec chunk", limit=5),
        store.upsert(workspace, make_records(3, "kb"), "kb"),
        store.search(workspace, "kb chunk", limit=5, types="kb"),
    )

    assert len(connector.calls) == 1
    connection = store.registry.get(workspace).connection
    assert connection.creates == len(store.config.searchable_types)


@pytest.mark.asyncio
async def test_deferred_indexing_builds_once_at_end(store, workspace):
    store.begin_deferred_indexing(workspace, "code")
    await store.upsert(workspace, make_records(200), "code")
    await store.upsert(workspace, make_records(200, "more"), "code")

    table = await table_for(store, workspace)
    assert table.create_index_calls == 0

    await store.end_deferred_indexing(workspace, "code")
    assert table.create_index_calls == 1

    await store.upsert(workspace, make_records(10, "late"), "code")
    assert table.create_index_calls == 1


@pytest.mark.asyncio
async def test_index_built_after_threshold_without_deferral(store, workspace):
    await store.upsert(workspace, make_records(100), "code")
    table = await table_for(store, workspace)
    assert table.create_index_calls == 0

    await store.upsert(workspace, make_records(200, "more"), "code")
    assert table.create_index_calls == 1
    assert "code" in store.registry.get(workspace).indexed


@pytest.mark.asyncio
async def test_failing_collection_does_not_abort_search(store, workspace):
    code = make_records(3, "code")
    await store.upsert(workspace, code, "code")
    await store.upsert(workspace, make_records(3, "kb"), "kb")
    (await table_for(store, workspace, "kb")).search_error = RuntimeError("corrupt fragment")

    hits = await store.search(workspace, code[0].text, limit=10)

    assert hits
    assert {h.type for h in hits} == {"code"}
    assert hits[0].id == "code-0"


@pytest.mark.asyncio
async def test_duplicate_ids_keep_best_hit(store, workspace):
    records = make_records(3)
    await store.upsert(workspace, records, "code")
    await store.upsert(workspace, make_records(3), "code")

    hits = await store.search(workspace, records[0].text, limit=10, types="code")

    ids = [h.id for h in hits]
    assert len(ids) == len(set(ids)) == 3


@pytest.mark.asyncio
async def test_filters_are_quoted_for_search_and_delete(store, workspace):
    await store.upsert(workspace, make_records(2), "code")
    table = await table_for(store, workspace)

    await store.search(workspace, "q", types="code", filter="filePath = 'src/main.ts'")
    await store.delete_items(workspace, "code", "filePath = 'a.ts'")

    assert table.filters[-1] == "`filePath` = 'src/main.ts'"
    assert table.deleted == ["`filePath` = 'a.ts'"]
    assert table.distance_types == ["cosine"]


@pytest.mark.asyncio
async def test_queries_rerank_with_exact_distances(store, workspace):
    await store.upsert(workspace, make_records(2), "code")
    table = await table_for(store, workspace)

    await store.search(workspace, "q", types="code")

    assert table.nprobes == [store.config.index.nprobes]
    assert table.refine_factors == [store.config.index.refine_factor]


@pytest.mark.asyncio
async def test_delete_failure_is_logged_not_raised(store, workspace):
    await store.upsert(workspace, make_records(2), "code")
    table = await table_for(store, workspace)

    async def broken_delete(where):
        raise RuntimeError("delete not permitted")

    table.delete = broken_delete
    await store.delete_items(workspace, "code", "filePath = 'x'")


@pytest.mark.asyncio
async def test_delete_on_missing_collection_does_not_create_it(store, workspace):
    await store.delete_items(workspace, "kb", "kbId = 'k1'")
    assert store.registry.get(workspace).connection.tables == {}


@pytest.mark.asyncio
async def test_query_embedding_failure_propagates(store, embedder, workspace):
    embedder.fail_on.add("broken query")
    with pytest.raises(EmbeddingError) as exc_info:
        await store.search(workspace, "broken query")
    assert exc_info.value.index is None


@pytest.mark.asyncio
async def test_search_limit_defaults_and_floor(store, workspace):
    await store.upsert(workspace, make_records(30), "code")
    table = await table_for(store, workspace)

    assert len(await store.search(workspace, "q", types="code")) <= store.config.default_limit
    await store.search(workspace, "q", limit=0, types="code")
    assert len(await store.search(workspace, "q", limit=-3, types="code")) == 1

    assert table.limits == [store.config.default_limit, store.config.default_limit, 1]


@pytest.mark.asyncio
async def test_progress_tracking(store, workspace, events):
    store.start_indexing(workspace, "code")
    state = store.get_state(workspace)
    assert state["indexing"] is True
    assert state["status"]["active_table"] == "code"

    await store.update_progress(workspace, "code", 5, 10)
    assert store.get_state(workspace)["status"]["progress"] == 50

    await store.update_progress(workspace, "kb", 0, 10)
    status = store.get_state(workspace)["status"]
    assert status["progress"] == 25
    assert (status["indexed_files"], status["total_files"]) == (5, 20)
    assert status["indexing"] is True

    await store.update_progress(workspace, "code", 10, 10)
    assert store.get_state(workspace)["indexing"] is True

    await store.update_progress(workspace, "kb", 10, 10)
    state = store.get_state(workspace)
    assert state["indexing"] is False
    assert state["status"]["progress"] == 100
    assert state["status"]["active_table"] is None
    assert state["last_indexed_at"] is not None

    assert events
    assert all(name == "vector_service.changed" for _, name, _ in events)
    assert events[-1][2]["indexing"] is False


@pytest.mark.asyncio
async def test_progress_with_nothing_to_index_is_zero(store, workspace):
    store.start_indexing(workspace)

    await store.update_progress(workspace, "code", 0, 0)

    state = store.get_state(workspace)
    assert state["status"]["progress"] == 0
    assert (state["status"]["indexed_files"], state["status"]["total_files"]) == (0, 0)
    assert state["indexing"] is False


@pytest.mark.asyncio
async def test_coroutine_callback_is_scheduled(embedder, store_config, connector, workspace):
    received = []

    async def broadcast(ws, name, payload):
        received.append(name)

    store = VectorStore(embedder, store_config, notifier=CallbackNotifier(broadcast), connect=connector)
    await store.init(workspace)
    await asyncio.sleep(0)

    assert received == ["vector_service.changed"]


@pytest.mark.asyncio
async def test_notifier_failure_never_fails_operation(embedder, store_config, connector, workspace):
    def explode(*args):
        raise RuntimeError("socket closed")

    store = VectorStore(embedder, store_config, notifier=CallbackNotifier(explode), connect=connector)
    await store.upsert(workspace, make_records(2), "code")
    assert store.get_state(workspace)["status"]["tables"]["code"]["count"] == 2


@pytest.mark.asyncio
async def test_purge_clears_caches_and_progress(store, workspace):
    await store.upsert(workspace, make_records(300), "code")
    store.start_indexing(workspace)
    await store.update_progress(workspace, "code", 1, 2)

    await store.purge(workspace, "code")

    state = store.registry.get(workspace)
    assert "code" not in state.indexed
    assert not any(name.startswith("code_vectors") for name in state.collection_tasks)
    assert state.status.progress == 0
    assert state.status.sources == {}
    assert state.status.tables["code"].exists is False


@pytest.mark.asyncio
async def test_close_closes_connections(store, workspace):
    await store.init(workspace)
    connection = store.registry.get(workspace).connection

    await store.close()

    assert connection.closed
