"""FastAPI app factory: request logging, typed-error mapping, health and API routes."""
from __future__ import annotations

import os
import time
from collections.abc import Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import uvicorn

from . import __version__
from .api import router as api_router
from .config import Settings, load_settings
from .container import Services, build_services
from .errors import OrderIntakeError, RateLimitedError
from .logging_conf import get_logger, setup_logging

setup_logging()
logger = get_logger("app")

ERROR_STATUS: dict[str, int] = {
    "not_found": 404,
    "invalid": 400,
    "conflict": 409,
    "folder_exists": 409,
    "expired": 410,
    "deleted": 410,
    "storage_failure": 502,
    "rate_limited": 429,
    "config_error": 500,
}


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the ASGI app.

    Tests pass ready-made ``services`` (in-memory storage, fixed clock); the
    default path loads settings from the environment and validates them.
    """
    if services is None:
        if settings is None:
            settings = load_settings()
            settings.validate()
        services = build_services(settings)

    app = FastAPI(title="Order Intake", version=__version__)
    app.state.services = services

    @app.on_event("startup")
    async def _on_startup() -> None:
        logger.info(
            "startup",
            extra={"event": "startup", "storage_backend": services.settings.storage_backend},
        )

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await services.aclose()
        logger.info("shutdown", extra={"event": "shutdown"})

    @app.exception_handler(OrderIntakeError)
    async def _typed_error(request: Request, exc: OrderIntakeError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.code, 500)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "request.rejected",
            extra={
                "event": "request_rejected",
                "path": request.url.path,
                "error_code": exc.code,
                "error": str(exc),
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": {"error_code": exc.code, "error_message": str(exc)}},
            headers=headers,
        )

    @app.middleware("http")
    async def request_logger(request: Request, call_next: Callable[[Request], Response]):
        """Log start/end of every request with a correlation id (``X-Request-ID``)."""
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id

        start = time.perf_counter()
        logger.info(
            "request.start",
            extra={
                "event": "request_start",
                "method": request.method,
                "path": request.url.path,
                "request_id": request_id,
            },
        )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.error",
                extra={
                    "event": "request_error",
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": request_id,
                },
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request.end",
            extra={
                "event": "request_end",
                "status_code": response.status_code,
                "elapsed_ms": round(elapsed_ms, 2),
                "request_id": request_id,
            },
        )
        return response

    @app.get("/health", summary="Liveness/readiness check")
    async def health() -> JSONResponse:
        return JSONResponse(content={"ok": True})

    app.include_router(api_router)

    return app


# ASGI entrypoint: `uvicorn order_intake.main:create_app --factory --port 3000`
def run() -> None:
    """Console entry point; HOST and PORT come from the environment."""
    uvicorn.run(
        "order_intake.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        log_config=None,
    )
