"""共享的依赖注入函数

提供 FastAPI 路由使用的依赖注入函数，用于注入 VectorStore。
"""
from fastapi import HTTPException, Request

from services.vector import VectorStore


async def get_vector_store(request: Request) -> VectorStore:
    """Get the vector store from app state (dependency injection).

    Raises:
        HTTPException: 503 if the store has not been started.
    """
    store = getattr(request.app.state, "vector_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Vector store is not initialized")
    return store
