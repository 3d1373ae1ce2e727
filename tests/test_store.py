"""
End-to-end tests for VectorStore against a real LanceDB store in tmp_path.
"""

import pytest

from services.vector import EmbeddingError, UnknownCollectionError, VectorStore
from services.vector.records import is_seed_id

from tests.fakes import FakeEmbeddingService, make_records


@pytest.fixture
def store(embedder, store_config):
    return VectorStore(embedder, store_config)


def table_status(store, workspace, collection_type="code"):
    return store.get_state(workspace)["status"]["tables"][collection_type]


@pytest.mark.asyncio
async def test_bulk_insert_then_search(store, workspace):
    await store.upsert(workspace, make_records(300), "code")

    status = table_status(store, workspace)
    assert status["count"] == 300
    assert status["exists"] is True
    assert store.get_state(workspace)["initialized"] is True

    hits = await store.search(workspace, "code", limit=5)
    assert len(hits) <= 5
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)
    assert not any(is_seed_id(h.id) for h in hits)
    assert all(0.0 <= s <= 1.0 for s in scores)


@pytest.mark.asyncio
async def test_identical_text_scores_close_to_one(store, workspace):
    records = make_records(20)
    await store.upsert(workspace, records, "code")

    hits = await store.search(workspace, records[7].text, limit=3, types="code")

    assert hits[0].id == "rec-7"
    assert hits[0].score > 0.99
    assert hits[0].type == "code"
    assert hits[0].file_path == "src/main.ts"
    assert hits[0].metadata == {"chunk": 7}
    assert (hits[0].start_line, hits[0].end_line) == (70, 79)


@pytest.mark.asyncio
async def test_identical_text_scores_close_to_one_once_indexed(store, workspace):
    records = make_records(300)
    await store.upsert(workspace, records, "code")
    assert "code" in store.registry.get(workspace).indexed

    for record in records[::15]:
        hits = await store.search(workspace, record.text, limit=5, types="code")
        assert hits[0].id == record.id
        assert hits[0].score > 0.99


@pytest.mark.asyncio
async def test_upsert_leaves_caller_records_untouched(store, workspace):
    records = make_records(3)
    before = [vars(r).copy() for r in records]

    await store.upsert(workspace, records, "code")

    assert [vars(r) for r in records] == before


@pytest.mark.asyncio
async def test_seed_records_never_returned(store, workspace):
    await store.init(workspace)

    hits = await store.search(workspace, "anything at all", limit=10)

    assert hits == []


@pytest.mark.asyncio
async def test_delete_by_file_path(store, workspace):
    records = make_records(6, "a", file_path="a.ts") + make_records(4, "b", file_path="b.ts")
    await store.upsert(workspace, records, "code")
    assert await store.get_indexed_paths(workspace, "code") == {"a.ts", "b.ts"}
    assert table_status(store, workspace)["count"] == 10

    await store.delete_items(workspace, "code", "filePath = 'a.ts'")
    await store.refresh_stats(workspace)

    assert table_status(store, workspace)["count"] == 4
    assert await store.get_indexed_paths(workspace, "code") == {"b.ts"}


@pytest.mark.asyncio
async def test_search_filter_on_camel_case_column(store, workspace):
    records = make_records(5, "a", file_path="a.ts") + make_records(5, "b", file_path="b.ts")
    await store.upsert(workspace, records, "code")

    hits = await store.search(workspace, records[1].text, limit=10, types="code", filter="filePath = 'b.ts'")

    assert hits
    assert {h.file_path for h in hits} == {"b.ts"}


@pytest.mark.asyncio
async def test_purge_resets_collection(store, workspace):
    await store.upsert(workspace, make_records(5), "code")

    await store.purge(workspace, "code")

    status = table_status(store, workspace)
    assert status["count"] == 0
    assert status["exists"] is False
    assert await store.get_indexed_paths(workspace, "code") == set()

    await store.upsert(workspace, make_records(3), "code")
    assert table_status(store, workspace)["count"] == 3


@pytest.mark.asyncio
async def test_purge_all_tolerates_missing_tables(store, workspace):
    await store.init(workspace)
    await store.purge(workspace)
    assert all(not t["exists"] for t in store.get_state(workspace)["status"]["tables"].values())


@pytest.mark.asyncio
async def test_embedding_failure_aborts_whole_batch(store, embedder, workspace):
    records = make_records(8)
    embedder.fail_on.add(records[3].text)

    with pytest.raises(EmbeddingError) as exc_info:
        await store.upsert(workspace, records, "code")

    assert exc_info.value.index == 3
    assert exc_info.value.record_id == "rec-3"
    assert exc_info.value.collection_type == "code"

    await store.refresh_stats(workspace)
    assert table_status(store, workspace)["count"] == 0


@pytest.mark.asyncio
async def test_dimension_change_rebuilds_collection(store, embedder, workspace):
    await store.upsert(workspace, make_records(5), "code")

    embedder.dimensions["code"] = 64
    await store.upsert(workspace, make_records(3, "new"), "code")

    assert table_status(store, workspace)["count"] == 3
    handle = await store.ensure_collection(workspace, "code")
    assert handle.dimension == 64


@pytest.mark.asyncio
async def test_query_re_embedded_for_collection_dimension(workspace, store_config):
    embedder = FakeEmbeddingService(dimension=128, dimensions={"kb": 64})
    store = VectorStore(embedder, store_config)
    records = make_records(4, "kb")
    await store.upsert(workspace, records, "kb")
    await store.upsert(workspace, make_records(4, "code"), "code")

    hits = await store.search(workspace, records[2].text, limit=3, types=["code", "kb"])

    assert hits[0].id == "kb-2"
    assert hits[0].type == "kb"
    assert hits[0].score > 0.99
    assert (records[2].text, "kb") in embedder.calls


@pytest.mark.asyncio
async def test_workspaces_are_isolated(store, tmp_path):
    first, second = tmp_path / "one", tmp_path / "two"
    first.mkdir()
    second.mkdir()

    await store.upsert(str(first), make_records(4, "one"), "code")
    await store.upsert(str(second), make_records(2, "two"), "code")

    assert table_status(store, str(first))["count"] == 4
    assert table_status(store, str(second))["count"] == 2
    hits = await store.search(str(second), "one chunk number 1 with body 7", limit=10, types="code")
    assert all(h.id.startswith("two-") for h in hits)
    assert (first / ".hifide-private" / "vectors").is_dir()


@pytest.mark.asyncio
async def test_empty_upsert_is_noop(store, workspace):
    await store.upsert(workspace, [], "code")
    assert store.get_state(workspace)["initialized"] is False


@pytest.mark.asyncio
async def test_unknown_collection_type(store, workspace):
    with pytest.raises(UnknownCollectionError):
        await store.search(workspace, "query", types="images")
    with pytest.raises(UnknownCollectionError):
        await store.upsert(workspace, make_records(1), "images")


@pytest.mark.asyncio
async def test_close_forgets_workspaces(store, workspace):
    await store.init(workspace)
    await store.close()
    assert store.registry.states() == []
