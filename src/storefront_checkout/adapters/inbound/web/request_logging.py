from __future__ import annotations

import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("storefront_checkout.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON line per request, level by status class."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            payload = _payload(request, request_id, _elapsed_ms(start), status=500)
            logger.exception(json.dumps(payload, ensure_ascii=True))
            raise

        payload = _payload(request, request_id, _elapsed_ms(start), status=response.status_code)
        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=True))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=True))
        else:
            logger.info(json.dumps(payload, ensure_ascii=True))

        response.headers["X-Request-Id"] = request_id
        return response


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _payload(request: Request, request_id: str, duration_ms: int, status: int) -> dict:
    return {
        "event": "http_request",
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status": status,
        "duration_ms": duration_ms,
    }
