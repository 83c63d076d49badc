import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from workhive.common.logging import get_logger

logger = get_logger("middleware")


class AuditMiddleware(BaseHTTPMiddleware):
    """Log every request with its caller and timing, and tag the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "[%s] %s %s %d %.1fms user=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request.headers.get("X-User-Id", "-"),
        )

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
