"""Request logging middleware.

One line per HTTP request: method, path, status, latency and a short
request id. The id is put on request.state so handlers can echo it in the
ApiResponse envelope, and is returned in the X-Request-ID header.

Log format:
    INFO [POST] /api/v1/listings/LST-1/bids -> 200 (12ms) req_a1b2c3d4e5f6
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.am_common.response import new_request_id

logger = logging.getLogger("am.request")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = new_request_id()
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s -> %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
