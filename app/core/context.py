from contextvars import ContextVar
from typing import Optional

from fastapi import Request

current_request: ContextVar[Request | None] = ContextVar(
    "current_request", default=None
)
current_request_id: ContextVar[Optional[str]] = ContextVar(
    "current_request_id", default=None
)


def get_request() -> Request:
    req = current_request.get()
    if req is None:
        raise RuntimeError(
            "Không có Request trong context, RequestContextMiddleware chưa được gắn"
        )
    return req


def get_request_id() -> Optional[str]:
    """Mã request hiện tại (None khi chạy ngoài HTTP, vd: job scheduler)."""
    return current_request_id.get()
