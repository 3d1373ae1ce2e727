"""FastAPI 应用入口

配置应用启动、关闭事件和路由注册。
"""
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import RequestLoggingMiddleware
from api.routes.vectors import router as vectors_router
from config.logging import get_logger, setup_logging
from config.settings import Settings, get_settings
from services.embedding import EmbeddingService
from services.notifier import LoggingNotifier
from services.vector import StoreConnectionError, VectorStore


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[VectorStore] = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use, defaults to ``get_settings()``.
        store: Pre-built store. When omitted one is created on startup from
            the embedding configuration and closed on shutdown.
    """
    app = FastAPI(
        title="Workspace Vectors",
        description="按工作区隔离的向量存储与检索服务",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware, settings=settings)

    @app.exception_handler(StoreConnectionError)
    async def store_connection_exception_handler(request: Request, exc: StoreConnectionError):
        """处理向量库打开失败"""
        logger.error(f"[VECTOR] Store error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Vector store unavailable", "detail": str(exc)},
        )

    app.include_router(vectors_router)

    app.state.vector_store = store

    @app.on_event("startup")
    async def startup_event():
        """应用启动时的初始化"""
        current = settings or get_settings()

        log_file = Path(current.logging.file) if current.logging.file else None
        setup_logging(level=current.logging.level, log_file=log_file)
        logger.info("[SERVER] Starting workspace vector service...")

        if app.state.vector_store is not None:
            return

        embedder = await EmbeddingService.create(current.embedding, current.vector_store.collections)
        app.state.embedder = embedder
        app.state.vector_store = VectorStore(embedder, current.vector_store, notifier=LoggingNotifier())
        logger.info(
            f"[SERVER] Vector store ready (collections: {', '.join(current.vector_store.collection_types)})"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """应用关闭时的清理"""
        logger.info("[SERVER] Shutting down...")
        if app.state.vector_store is not None:
            await app.state.vector_store.close()

        embedder = getattr(app.state, "embedder", None)
        if embedder is not None:
            await embedder.close()
            app.state.embedder = None
        logger.info("[SERVER] Shutdown complete")

    @app.get("/")
    async def root():
        """服务信息"""
        return {"name": "Workspace Vectors", "version": "0.1.0", "docs": "/docs"}

    @app.get("/health")
    async def health():
        """健康检查"""
        return {"status": "healthy", "vector_store": app.state.vector_store is not None}

    return app


app = create_app()
