"""Global exception handlers for structured JSON error responses."""

from __future__ import annotations

import logging
import traceback

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aoiviewer.services.wms import WMSUpstreamError

logger = logging.getLogger("aoiviewer.errors")


def _error_body(status_code: int, detail: object) -> dict:
    return {"error": True, "status_code": status_code, "detail": detail}


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return structured JSON for all HTTP exceptions (4xx/5xx)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.detail),
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured JSON for request validation errors (422)."""
    return JSONResponse(
        status_code=422,
        content=_error_body(422, jsonable_encoder(exc.errors())),
    )


async def wms_upstream_exception_handler(
    request: Request, exc: WMSUpstreamError
) -> JSONResponse:
    """Map an upstream WMS failure to 502 without echoing upstream content."""
    logger.warning("WMS upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content=_error_body(502, "Failed to fetch feature information"),
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Logs the full traceback server-side but returns a generic 500 response
    with no internal details leaked.
    """
    logger.error(
        "Unhandled exception on %s %s:\n%s",
        request.method,
        request.url.path,
        "".join(traceback.format_exception(exc)),
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(500, "Internal server error"),
    )
