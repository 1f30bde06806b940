"""
FastAPI exception middleware for unified error handling
"""

import logging
import time
from datetime import datetime
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..exceptions import BasePricingException, ErrorCode

logger = logging.getLogger(__name__)

_BAD_REQUEST_CODES = {
    ErrorCode.INVALID_REQUEST,
    ErrorCode.INVALID_PARAMETER,
    ErrorCode.CONFIG_INVALID,
    ErrorCode.CONFIG_PARSE_ERROR,
    ErrorCode.CONFIG_MISSING_REQUIRED,
    ErrorCode.TIER_RULE_INVALID,
    ErrorCode.MODEL_PATTERN_INVALID,
    ErrorCode.UNKNOWN_OPTION_KEY,
}

_NOT_FOUND_CODES = {
    ErrorCode.RESOURCE_NOT_FOUND,
    ErrorCode.TIER_CONFIG_NOT_FOUND,
    ErrorCode.TIER_RULE_NOT_FOUND,
}


def status_code_for(exc: BasePricingException) -> int:
    """根据错误码确定HTTP状态码"""
    if exc.error_code in _BAD_REQUEST_CODES:
        return 400
    if exc.error_code in _NOT_FOUND_CODES:
        return 404
    if exc.error_code == ErrorCode.TIER_CONFIG_EXISTS:
        return 409
    return 500


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """统一异常处理中间件"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            return await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return self._handle_exception(request, e, duration_ms)

    def _handle_exception(
        self, request: Request, exc: Exception, duration_ms: float
    ) -> JSONResponse:
        """处理异常并返回统一格式的错误响应"""
        if isinstance(exc, BasePricingException):
            status_code = status_code_for(exc)
            error_response: dict[str, Any] = {
                "success": False,
                "error": {
                    "code": exc.error_code.value,
                    "message": exc.message,
                    "details": exc.details,
                    "request_id": getattr(request.state, "request_id", None),
                    "duration_ms": round(duration_ms, 2),
                },
            }
        else:
            # 未知异常
            status_code = 500
            error_response = {
                "success": False,
                "error": {
                    "code": ErrorCode.UNKNOWN_ERROR.value,
                    "message": "Internal server error",
                    "request_id": getattr(request.state, "request_id", None),
                    "timestamp": datetime.now().isoformat(),
                    "duration_ms": round(duration_ms, 2),
                },
            }
            logger.error(f"Unhandled exception: {exc}", exc_info=True)

        logger.warning(
            f"Request failed: {request.method} {request.url.path} -> {status_code}",
            extra={
                "exception": str(exc),
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )
        return JSONResponse(status_code=status_code, content=error_response)
