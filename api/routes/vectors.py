"""向量存储 API 路由

提供工作区向量存储的初始化、写入、检索、删除、清空以及索引进度接口。
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from api.routes.dependencies import get_vector_store
from config.logging import get_logger
from services.vector import EmbeddingError, Record, StoreConnectionError, UnknownCollectionError, VectorStore
from schemas.vector_store import (
    CollectionRequest,
    DeleteRequest,
    IndexedPathsResponse,
    ProgressRequest,
    PurgeRequest,
    SearchHit,
    SearchRequest,
    SearchResponse,
    StartIndexingRequest,
    UpsertRequest,
    UpsertResponse,
    WorkspaceRequest,
    WorkspaceStateResponse,
)


logger = get_logger(__name__)

router = APIRouter(prefix="/v1/vectors", tags=["vectors"])


def _http_error(operation: str, error: Exception) -> Exception:
    # Store connection failures are rendered as 503 by the app-level handler
    if isinstance(error, (HTTPException, StoreConnectionError)):
        return error
    if isinstance(error, UnknownCollectionError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, EmbeddingError):
        return HTTPException(status_code=502, detail=f"{operation} failed: {error}")
    logger.error(f"[API] {operation} failed: {error}")
    return HTTPException(status_code=500, detail=f"{operation} failed: {str(error)}")


@router.post("/init", response_model=WorkspaceStateResponse)
async def init_workspace(request: WorkspaceRequest, store: VectorStore = Depends(get_vector_store)):
    """打开工作区向量库并刷新统计"""
    try:
        await store.init(request.workspace_root)
    except Exception as e:
        raise _http_error("Init", e) from e
    return store.get_state(request.workspace_root)


@router.post("/upsert", response_model=UpsertResponse)
async def upsert_records(request: UpsertRequest, store: VectorStore = Depends(get_vector_store)):
    """嵌入并写入记录

    任一记录嵌入失败时整批放弃，不写入任何记录。
    """
    records = [Record(**item.model_dump()) for item in request.records]
    try:
        await store.upsert(request.workspace_root, records, request.type)
    except Exception as e:
        raise _http_error("Upsert", e) from e
    return UpsertResponse(type=request.type, count=len(records))


@router.post("/search", response_model=SearchResponse)
async def search_vectors(request: SearchRequest, store: VectorStore = Depends(get_vector_store)):
    """在一个、多个或全部集合中进行向量检索"""
    try:
        hits = await store.search(
            request.workspace_root,
            request.query,
            limit=request.limit,
            types=request.types,
            filter=request.filter,
        )
    except Exception as e:
        raise _http_error("Search", e) from e

    return SearchResponse(
        results=[SearchHit(**asdict(hit)) for hit in hits],
        query=request.query,
        total_results=len(hits),
    )


@router.post("/delete", response_model=WorkspaceStateResponse)
async def delete_items(request: DeleteRequest, store: VectorStore = Depends(get_vector_store)):
    try:
        await store.delete_items(request.workspace_root, request.type, request.filter)
    except Exception as e:
        raise _http_error("Delete", e) from e
    return store.get_state(request.workspace_root)


@router.get("/indexed-paths", response_model=IndexedPathsResponse)
async def indexed_paths(
    workspace_root: str = Query(..., description="Workspace root path"),
    type: str = Query("code", description="Collection type"),
    store: VectorStore = Depends(get_vector_store),
):
    """已写入集合的文件路径"""
    try:
        paths = await store.get_indexed_paths(workspace_root, type)
    except Exception as e:
        raise _http_error("Indexed paths", e) from e
    return IndexedPathsResponse(type=type, paths=sorted(paths), total=len(paths))


@router.post("/purge", response_model=WorkspaceStateResponse)
async def purge(request: PurgeRequest, store: VectorStore = Depends(get_vector_store)):
    """删除一个或全部集合"""
    try:
        await store.purge(request.workspace_root, request.type)
    except Exception as e:
        raise _http_error("Purge", e) from e
    return store.get_state(request.workspace_root)


@router.post("/deferred/begin", response_model=WorkspaceStateResponse)
async def begin_deferred_indexing(request: CollectionRequest, store: VectorStore = Depends(get_vector_store)):
    """批量导入开始，暂停自动建索引"""
    try:
        store.begin_deferred_indexing(request.workspace_root, request.type)
    except Exception as e:
        raise _http_error("Begin deferred indexing", e) from e
    return store.get_state(request.workspace_root)


@router.post("/deferred/end", response_model=WorkspaceStateResponse)
async def end_deferred_indexing(request: CollectionRequest, store: VectorStore = Depends(get_vector_store)):
    """批量导入结束，立即建索引"""
    try:
        await store.end_deferred_indexing(request.workspace_root, request.type)
    except Exception as e:
        raise _http_error("End deferred indexing", e) from e
    return store.get_state(request.workspace_root)


@router.get("/state", response_model=WorkspaceStateResponse)
async def get_state(
    workspace_root: str = Query(..., description="Workspace root path"),
    store: VectorStore = Depends(get_vector_store),
):
    return store.get_state(workspace_root)


@router.post("/progress", response_model=WorkspaceStateResponse)
async def update_progress(request: ProgressRequest, store: VectorStore = Depends(get_vector_store)):
    """上报某个来源的索引进度"""
    try:
        await store.update_progress(request.workspace_root, request.source, request.indexed, request.total)
    except Exception as e:
        raise _http_error("Progress", e) from e
    return store.get_state(request.workspace_root)


@router.post("/indexing/start", response_model=WorkspaceStateResponse)
async def start_indexing(request: StartIndexingRequest, store: VectorStore = Depends(get_vector_store)):
    try:
        store.start_indexing(request.workspace_root, request.type)
    except Exception as e:
        raise _http_error("Start indexing", e) from e
    return store.get_state(request.workspace_root)
