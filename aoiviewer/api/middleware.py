"""Access logging and request-ID propagation (pure ASGI)."""

from __future__ import annotations

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from aoiviewer.services.metrics import metrics
from aoiviewer.services.request_context import generate_request_id, request_id_var

logger = logging.getLogger("aoiviewer.access")

_REQUEST_ID_HEADER = b"x-request-id"


class RequestLoggingMiddleware:
    """Log ``method path status latency`` once per HTTP request.

    Reuses an incoming ``X-Request-ID`` or mints one, exposes it through
    the request contextvar for log formatters, and echoes it back along
    with ``X-Response-Time-Ms``.  Query strings are not logged; feature-info
    lookups carry map extents that are noise in access logs.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        rid = headers.get(_REQUEST_ID_HEADER, b"").decode("latin-1") or generate_request_id()
        token = request_id_var.set(rid)

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                message = {
                    **message,
                    "headers": [
                        *message.get("headers", []),
                        (b"x-response-time-ms", str(elapsed_ms).encode()),
                        (_REQUEST_ID_HEADER, rid.encode()),
                    ],
                }
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.info(
                "%s %s %s %.2fms",
                scope.get("method", ""),
                scope.get("path", ""),
                status_code,
                elapsed_ms,
            )
            metrics.inc_request(status_code)
            metrics.record_latency(elapsed_ms)
            request_id_var.reset(token)
