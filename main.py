# ─────────────────────────────────────────────────────────────────
# main.py - Application Entry Point
#
# Wires the pieces together:
#   config.py          → settings from env / .env
#   seed.py            → registry built from the device CSV at startup
#   logging_config.py  → log format + per-request context
#   routes/devices.py  → the telemetry endpoints
#
# Run locally:
#   python main.py
#   uvicorn main:app --port 8080
# ─────────────────────────────────────────────────────────────────

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from database import DeviceRegistry
from logging_config import (
    REQUEST_ID_HEADER,
    RequestContext,
    configure_logging,
    get_request_context,
    new_request_id,
)
from routes.devices import router as devices_router
from seed import registry_from_csv

logger = logging.getLogger("main")


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def create_app(
    registry: Optional[DeviceRegistry] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Pass `registry` to serve an already-seeded registry (tests do
    this). Otherwise the registry is loaded from settings.DEVICES_CSV
    when the app starts, and a bad seed file aborts startup.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.registry is None:
            app.state.registry = registry_from_csv(settings.DEVICES_CSV)
        logger.info(
            f"🚀 {settings.APP_TITLE} v{settings.APP_VERSION} ready "
            f"with {app.state.registry.count()} device(s)"
        )
        yield

    app = FastAPI(
        title=settings.APP_TITLE,
        description="Uptime and upload-time telemetry for edge devices",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.settings = settings

    # ── Request context + access log ──────────────────────────────
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        ctx = RequestContext.create(request_id)
        request.state.context = ctx

        ctx.logger.info(f"➡️  {request.method} {request.url.path} started")
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            ctx.logger.exception(
                f"💥 {request.method} {request.url.path} failed "
                f"| duration_ms: {(time.perf_counter() - start) * 1000:.2f}"
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error"},
                headers={REQUEST_ID_HEADER: request_id},
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        ctx.logger.info(
            f"⬅️  {request.method} {request.url.path} completed "
            f"| status: {response.status_code} "
            f"| duration_ms: {(time.perf_counter() - start) * 1000:.2f}"
        )
        return response

    # ── Bad bodies are a 400, not FastAPI's default 422 ──────────
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        detail = _describe_validation_error(exc)
        get_request_context(request).logger.warning(
            f"🚫 Invalid request {request.method} {request.url.path} | {detail}"
        )
        return JSONResponse(status_code=400, content={"detail": detail})

    app.include_router(devices_router)

    @app.get("/")
    def root():
        return {
            "message": f"{settings.APP_TITLE} is running",
            "version": settings.APP_VERSION,
            "docs": "/docs",
        }

    @app.get("/health")
    def health(request: Request):
        return {"status": "ok", "devices": request.app.state.registry.count()}

    return app


app = create_app()


if __name__ == "__main__":
    _settings = app.state.settings
    uvicorn.run(app, host=_settings.HOST, port=_settings.PORT)
