import time
import uuid

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.context import current_request, current_request_id

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Gắn Request + request_id vào context, log kèm request_id cho mọi service."""

    async def dispatch(self, request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        req_token = current_request.set(request)
        id_token = current_request_id.set(request_id)
        started = time.perf_counter()
        try:
            with logger.contextualize(request_id=request_id):
                response = await call_next(request)
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.debug(
                    f"{request.method} {request.url.path} → {response.status_code} ({elapsed_ms:.1f}ms)"
                )
        finally:
            current_request.reset(req_token)
            current_request_id.reset(id_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
