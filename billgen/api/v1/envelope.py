# billgen/api/v1/envelope.py
"""
Standardized API response envelope used by all v1 endpoints.

Success:
    {"success": true, "data": <payload>, "message": <optional string>}
Paginated list:
    {"success": true, "data": [...], "pagination": {"page", "limit", "total", "pages"}}
Error:
    {"success": false, "error": {"code", "message", "field"}}
Not found:
    {"success": false, "error": "Bill not found"}
"""

from __future__ import annotations

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard envelope for successful v1 API responses."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


# ---------------------------------------------------------------------------
# Helpers for building responses
# ---------------------------------------------------------------------------

def ok(data: Any = None, message: str | None = None) -> dict:
    """Build a success response dict."""
    return ApiResponse(data=data, message=message).model_dump()


def paginated(items: list, total: int, page: int, limit: int) -> dict:
    """Build a paginated success response dict."""
    pagination = Pagination(
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if total else 0,
    )
    return {"success": True, "data": items, "pagination": pagination.model_dump()}


def error(code: str, message: str, field: str | None = None) -> dict:
    """Build a structured error response dict."""
    return {"success": False, "error": ErrorDetail(code=code, message=message, field=field).model_dump()}


def not_found(message: str = "Bill not found") -> dict:
    return {"success": False, "error": message}
