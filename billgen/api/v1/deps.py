# billgen/api/v1/deps.py
"""
FastAPI dependencies for the v1 API layer.

``get_renderer`` hands out the process-wide BillRenderer that the application
lifespan starts on boot and closes on shutdown.
"""

from __future__ import annotations

from fastapi import Request

from billgen.domain.services.bill_pdf import BillRenderer


def get_renderer(request: Request) -> BillRenderer:
    renderer = getattr(request.app.state, "renderer", None)
    if renderer is None:
        raise RuntimeError("Bill renderer is not running")
    return renderer
