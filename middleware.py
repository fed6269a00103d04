import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from services.metrics import increment_http_requests
from services.observability import set_request_id

logger = logging.getLogger("finance.http")

SENSITIVE_HEADERS = {"authorization", "cookie", "x-provider-signature"}


def _safe_headers(headers: dict) -> dict:
    safe = {}
    for k, v in headers.items():
        if k.lower() in SENSITIVE_HEADERS:
            safe[k] = "***"
        else:
            safe[k] = v
    return safe


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        start = time.time()

        request.state.request_id = req_id
        set_request_id(req_id)

        response = None
        try:
            response = await call_next(request)
            response.headers["X-Request-Id"] = req_id
            return response
        finally:
            duration_ms = int((time.time() - start) * 1000)
            status = getattr(response, "status_code", 500)
            increment_http_requests(_route_label(request), status)

            # no PII: auth and signature headers are masked
            logger.info(
                "http_request method=%s path=%s status=%s duration_ms=%s headers=%s",
                request.method,
                request.url.path,
                status,
                duration_ms,
                _safe_headers(dict(request.headers)),
            )
            set_request_id(None)
