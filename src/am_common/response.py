"""The JSON envelope every endpoint answers with.

{
    "code": 0,            // 0 on success, the AppError code otherwise
    "message": "success",
    "data": { ... },      // null on error
    "timestamp": "...",   // server time, ISO 8601 UTC
    "request_id": "..."   // same value as the X-Request-ID header
}
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from pydantic import BaseModel, Field

from src.am_common.errors import AppError


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def _request_id(request: Request | None) -> str:
    if request is None:
        return new_request_id()
    return getattr(request.state, "request_id", None) or new_request_id()


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = Field(default_factory=new_request_id)


def success_response(data: Any = None, request: Request | None = None) -> ApiResponse:
    return ApiResponse(data=data, request_id=_request_id(request))


def error_response(exc: AppError, request: Request | None = None) -> ApiResponse:
    return ApiResponse(code=exc.code, message=exc.message, request_id=_request_id(request))
