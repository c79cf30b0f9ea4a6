"""
FastAPI application entry point for the site backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from folio.config import Settings, get_settings
from folio.errors import FolioError
from folio.routes import files_router, router
from folio.storage import UPLOADS_URL_PREFIX

logger = logging.getLogger(__name__)


async def handle_folio_error(request: Request, exc: FolioError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Folio Site Backend", version="0.1.0")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.session_https_only,
    )
    app.add_exception_handler(FolioError, handle_folio_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.dependency_overrides[get_settings] = lambda: settings

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(files_router, prefix=UPLOADS_URL_PREFIX)
    return app


app = create_app()
