"""JSON access logging with request IDs."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.errors import ServerErrorMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("newsletter_api.access")

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_SCOPE_KEY = "newsletter_api.request_id"
_LOGGED_HEADERS = {"user-agent", "content-type"}


def request_id_for(req: Request) -> str:
    return req.headers.get("x-request-id") or str(uuid.uuid4())


_SERVER_ERROR_PATCHED = False


def _patch_server_error_middleware() -> None:
    """Make 500s produced by Starlette's outermost handler carry the request ID.

    That handler sits outside every user middleware, so the access log
    middleware never sees its response.
    """

    global _SERVER_ERROR_PATCHED
    if _SERVER_ERROR_PATCHED:
        return

    original_call = ServerErrorMiddleware.__call__

    async def _patched_call(self, scope, receive, send):  # type: ignore[override]
        if scope.get("type") != "http":
            await original_call(self, scope, receive, send)
            return

        async def _send(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(raw=list(message.get("headers", [])))
                request_id = scope.get(_REQUEST_ID_SCOPE_KEY)
                if request_id and "x-request-id" not in headers:
                    headers[REQUEST_ID_HEADER] = request_id
                message = {**message, "headers": headers.raw}
            await send(message)

        await original_call(self, scope, receive, _send)

    ServerErrorMiddleware.__call__ = _patched_call  # type: ignore[assignment]
    _SERVER_ERROR_PATCHED = True


_patch_server_error_middleware()


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):  # type: ignore[override]
        request_id = request_id_for(request)
        request.scope[_REQUEST_ID_SCOPE_KEY] = request_id
        start = time.perf_counter()
        status = 500
        error: str | None = None
        response: Response | None = None
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception as exc:
            error = repr(exc)
            raise
        finally:
            record = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                "client_ip": request.client.host if request.client else None,
                "headers": {
                    key: value
                    for key, value in request.headers.items()
                    if key.lower() in _LOGGED_HEADERS
                },
            }
            if error:
                record["error"] = error
                logger.error(json.dumps(record))
            else:
                logger.info(json.dumps(record))
