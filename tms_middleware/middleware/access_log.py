"""
HTTP 访问日志中间件

记录所有 HTTP 请求的访问日志到 access.log 文件.
"""

import time
from typing import Callable
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from tms_middleware.core.logging import get_access_logger

access_logger = get_access_logger("http")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    HTTP 访问日志中间件

    日志格式: {method} {path} {status_code} {duration}ms {client_ip}
    处理过程中抛出未捕获异常时按 500 记录后继续抛出.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = (time.perf_counter() - start_time) * 1000  # 毫秒
            access_logger.info(
                f"{request.method} {request.url.path} {status_code} {duration:.2f}ms {client_ip}"
            )
