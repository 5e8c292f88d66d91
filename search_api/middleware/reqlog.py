"""
Request id and access-log middleware.

`RequestIdMiddleware` honours an incoming X-Request-ID (or mints one), exposes
it on `request.state.request_id` and in `request_id_ctx` so every log line of
the request carries it, and echoes it back with the response time.

`RequestLogMiddleware` writes one `request.start` and one `request.end` (or
`request.error`) line per request. Server create/update bodies are included
with secrets masked because they carry backend configuration.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..utils.logging import request_id_ctx

log = logging.getLogger("http.req")

MASK = "***REDACTED***"
_SECRET_MARKERS = ("token", "password", "secret", "key")
_LOGGED_BODY_PREFIX = "/servers"
_BODY_LIMIT = 4096


def _mask_secrets(obj: Dict[str, Any]) -> None:
    for key, value in obj.items():
        if isinstance(value, dict):
            _mask_secrets(value)
        elif any(marker in key.lower() for marker in _SECRET_MARKERS):
            obj[key] = MASK


def redacted_body(raw: bytes) -> str:
    """JSON body as a string with secret-looking keys masked at any depth."""
    try:
        obj = json.loads(raw[:_BODY_LIMIT].decode("utf-8", errors="replace"))
    except ValueError:
        return "<non-json>"
    if isinstance(obj, dict):
        _mask_secrets(obj)
    return json.dumps(obj)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = rid
        ctx_token = request_id_ctx.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(ctx_token)
        response.headers["X-Request-ID"] = rid
        response.headers["X-Response-Time-ms"] = f"{_elapsed_ms(start):.2f}"
        return response


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        fields: Dict[str, Any] = {
            "rid": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
        }

        body: Optional[str] = None
        if request.method in ("POST", "PATCH") and request.url.path.startswith(_LOGGED_BODY_PREFIX):
            body = redacted_body(await request.body())
        log.info("request.start", extra={**fields, "body": body})

        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.error", extra={**fields, "duration_ms": _elapsed_ms(start)})
            raise

        log.info("request.end", extra={**fields, "status": response.status_code, "duration_ms": _elapsed_ms(start)})
        return response
