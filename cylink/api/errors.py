"""Response envelope shared by every endpoint.

Success and failure bodies both look like ``{"status", "message", "data"?}``.
Validation failures add ``details``: one ``{"field", "message"}`` per problem.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def envelope(status: int, message: str, data: Any = None, **extra) -> JSONResponse:
    body: dict[str, Any] = {"status": status, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return JSONResponse(status_code=status, content=body)


def _field_errors(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        # Drop the "body"/"query" location prefix; clients only need the field path
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc) or "request", "message": err["msg"]})
    return details


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return envelope(422, "Invalid request data", details=_field_errors(exc))


async def _on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    response = envelope(exc.status_code, message)
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def _on_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return envelope(500, INTERNAL_ERROR_MESSAGE)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(StarletteHTTPException, _on_http_error)
    app.add_exception_handler(Exception, _on_unhandled_error)
