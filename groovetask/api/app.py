"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..adapters.base import KeyValueBackend
from ..adapters.memory import MemoryBackend
from ..config import Settings
from ..errors import GrooveTaskError, Internal, InvalidInput
from ..services import build_services
from .register import register_routes

log = logging.getLogger("groovetask.api")


def create_app(
    settings: Settings | None = None, backend: KeyValueBackend | None = None
) -> FastAPI:
    """Build the app around ``backend``, closing it on shutdown."""
    settings = settings or Settings()
    backend = backend or MemoryBackend()
    services = build_services(settings, backend)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        log.info("GrooveTask API ready (%s)", settings.environment)
        try:
            yield
        finally:
            await backend.close()

    app = FastAPI(title="GrooveTask", lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(GrooveTaskError)
    async def handle_store_error(
        _request: Request, exc: GrooveTaskError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("Request failed: %s", exc)
        if isinstance(exc, Internal):
            exc = Internal()
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(
        _request: Request, _exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            {"error": InvalidInput.default_message},
            status_code=InvalidInput.status_code,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", exc)
        error = Internal()
        return JSONResponse({"error": error.message}, status_code=error.status_code)

    register_routes(app, services)
    return app
