import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger("pubrelay.access")


def init_logging(level: str = "INFO"):
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


def _req_id(request: Request) -> str:
    """Return the inbound request ID or generate a UUID4."""

    return request.headers.get("x-request-id") or str(uuid.uuid4())


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log one line per request and echo an `X-Request-ID` header."""

    async def dispatch(self, request: Request, call_next):
        request_id = _req_id(request)
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000
        log.info(
            "%s %s %s %.2fms request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
