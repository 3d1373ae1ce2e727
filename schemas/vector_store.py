"""向量存储 API 的请求和响应模型

定义工作区初始化、写入、检索、删除、清空以及索引状态相关的模型。
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union


class WorkspaceRequest(BaseModel):
    """Request carrying only a workspace root."""

    workspace_root: str = Field(..., description="Absolute workspace root path")


class CollectionRequest(WorkspaceRequest):
    """Request addressing one collection type of a workspace."""

    type: str = Field("code", description="Collection type")


class RecordIn(BaseModel):
    """A record to ingest. The vector is computed server-side."""

    id: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    file_path: Optional[str] = None
    symbol_name: Optional[str] = None
    symbol_type: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    kb_id: Optional[str] = None
    article_title: Optional[str] = None


class UpsertRequest(CollectionRequest):
    records: List[RecordIn] = Field(default_factory=list)


class UpsertResponse(BaseModel):
    status: str = "ok"
    type: str
    count: int


class SearchRequest(WorkspaceRequest):
    query: str = Field(..., description="Search query")
    limit: Optional[int] = Field(None, ge=1, le=200, description="Maximum number of results")
    types: Union[str, List[str], None] = Field("all", description="Collection type, list of types or 'all'")
    filter: Optional[str] = Field(None, description="SQL filter expression")


class SearchHit(BaseModel):
    id: str
    score: float
    text: str
    type: str
    file_path: Optional[str] = None
    kb_id: Optional[str] = None
    symbol_name: Optional[str] = None
    symbol_type: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    article_title: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    results: List[SearchHit]
    query: str
    total_results: int


class DeleteRequest(CollectionRequest):
    filter: str = Field(..., description="SQL filter selecting rows to delete")


class PurgeRequest(WorkspaceRequest):
    type: Optional[str] = Field(None, description="Collection type, all collections if omitted")


class IndexedPathsResponse(BaseModel):
    type: str
    paths: List[str]
    total: int


class ProgressRequest(WorkspaceRequest):
    source: str
    indexed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class StartIndexingRequest(WorkspaceRequest):
    type: str = "all"


class TableStatusOut(BaseModel):
    count: int = 0
    indexed_at: Optional[float] = None
    exists: bool = False


class SourceProgressOut(BaseModel):
    indexed: int = 0
    total: int = 0


class IndexingStatusOut(BaseModel):
    indexing: bool = False
    progress: int = 0
    total_files: int = 0
    indexed_files: int = 0
    active_table: Optional[str] = None
    sources: Dict[str, SourceProgressOut] = Field(default_factory=dict)
    tables: Dict[str, TableStatusOut] = Field(default_factory=dict)


class WorkspaceStateResponse(BaseModel):
    workspace_id: str
    initialized: bool
    indexing: bool
    last_indexed_at: Optional[float] = None
    status: IndexingStatusOut
