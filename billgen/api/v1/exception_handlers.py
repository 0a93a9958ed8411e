# billgen/api/v1/exception_handlers.py
"""
Translate domain and validation errors into the v1 error envelope.

4xx errors carry their code, message and offending field. 5xx errors are
logged with full context and answered with a generic message.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from billgen.api.v1.envelope import error, not_found
from billgen.domain.errors import BillError

logger = logging.getLogger("api.v1.errors")

INTERNAL_ERROR_MESSAGE = "Internal error while processing bill"

_LOCATIONS = {"body", "query", "path", "header"}


def _field_from_loc(loc: tuple) -> str | None:
    """("body", "items", 0, "rate") -> "items[0].rate"."""
    parts = list(loc[1:]) if loc and loc[0] in _LOCATIONS else list(loc)
    field = ""
    for part in parts:
        if isinstance(part, int):
            field += f"[{part}]"
        else:
            field += f".{part}" if field else str(part)
    return field or None


async def bill_error_handler(request: Request, exc: BillError) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return JSONResponse(status_code=exc.status_code, content=not_found(exc.message))

    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.code, request.method, request.url.path, exc.message,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error("INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE),
        )

    logger.info("Rejected %s %s: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error(exc.code, exc.message, exc.field),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = _field_from_loc(tuple(first.get("loc", ())))
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error("VALIDATION_ERROR", message, field),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error("INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillError, bill_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
