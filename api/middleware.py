"""请求监控和日志中间件

记录 API 请求的处理时间、错误响应和慢请求。
"""
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from config.settings import Settings, get_settings
from config.logging import get_logger


logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs failed and slow requests; adds an ``X-Process-Time`` header."""

    def __init__(self, app, settings: Optional[Settings] = None):
        super().__init__(app)
        self._settings = settings

    @property
    def slow_threshold(self) -> float:
        settings = self._settings or get_settings()
        return settings.logging.slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        extra = {"path": str(request.url.path), "method": request.method}

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"[API] {request.method} {request.url.path} - {process_time:.3f}s - ERROR: {str(e)}",
                extra={**extra, "status": "error"},
            )
            raise

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}"

        if response.status_code >= 400:
            logger.warning(
                f"[API] {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s",
                extra={**extra, "status": response.status_code},
            )
        elif self.slow_threshold and process_time > self.slow_threshold:
            logger.warning(
                f"[API] {request.method} {request.url.path} - SLOW - {process_time:.3f}s",
                extra={**extra, "slow": True},
            )

        return response
