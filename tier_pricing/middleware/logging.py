"""
日志中间件 - 自动记录API请求和响应
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.logger import bind_log_context, clear_log_context, get_logger

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """API请求/响应日志中间件"""

    def __init__(self, app, skip_paths: Optional[set[str]] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or {
            "/health",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/favicon.ico",
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 生成请求ID
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        if request.url.path in self.skip_paths:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        bind_log_context(request_id=request_id)
        start_time = time.time()
        logger.info(
            f"API Request: {request.method} {request.url.path}",
            query_params=dict(request.query_params),
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            # 确定日志级别
            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                f"API Response: {response.status_code} - {process_time:.4f}s",
                status_code=response.status_code,
                process_time=round(process_time, 4),
            )

            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_log_context()
