from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import router
from datastore.telemetry_store import build_default_store
from logging_config import configure_logging
from services.ingestion import build_default_ingestion
from services.retention import build_default_scheduler
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    scheduler = None
    if get_settings().retention_enabled:
        scheduler = build_default_scheduler()
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()
            build_default_scheduler.cache_clear()
        build_default_ingestion.cache_clear()
        build_default_store().dispose()
        build_default_store.cache_clear()


async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    fields = sorted({".".join(str(part) for part in error["loc"][1:]) for error in errors})
    logger.info("Rejected malformed request", extra={"reason": ", ".join(fields)})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "message": f"Invalid or missing fields: {', '.join(fields)}",
            "errors": [{"loc": list(error["loc"]), "msg": error["msg"]} for error in errors],
        },
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Telemetry Pipeline",
        description="Ingests device readings, retires old data, and serves them to viewers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    return app

app = create_app()
