import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from billgen.config.settings import settings
from billgen.core.db import engine
from billgen.core.logging_config import setup_logging
from billgen.domain.services.bill_pdf import BillRenderer
from billgen.infrastructure.db import models  # noqa: F401  (registers tables)
from billgen.infrastructure.db.base import Base
from billgen.api.routes import health_router
from billgen.api.v1 import v1_router
from billgen.api.v1.exception_handlers import register_exception_handlers

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    renderer = BillRenderer()
    renderer.start()
    app.state.renderer = renderer
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    try:
        yield
    finally:
        renderer.close()
        await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(v1_router)
    return app


app = create_app()
