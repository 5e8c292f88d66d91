"""
Search API: FastAPI application entrypoint.

Startup migrates the database and, when enabled, starts the reconciliation
scheduler; shutdown stops both. Errors raised by the dispatch layer are
turned into JSON bodies of the form {"error": ..., "request_id": ...}:

    NotFoundError            404
    InvalidBackendError      422  (+ backend_id, and field for ConfigurationError)
    BackendError             502  (+ backend_id)
    request validation       422  (+ detail)
    anything else            500
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware

from . import __version__
from .config import settings
from .db import close_db, init_db
from .errors import BackendError, ConfigurationError, InvalidBackendError, NotFoundError
from .middleware.reqlog import RequestIdMiddleware, RequestLogMiddleware
from .routes import get_api_router
from .utils.logging import configure_logging
from .workers import scheduler as reconcile_scheduler

log = logging.getLogger("app")


def _error_body(request: Request, error: Any, **extra: Any) -> Dict[str, Any]:
    body = {"error": error, "request_id": getattr(request.state, "request_id", None)}
    body.update(extra)
    return body


async def _on_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(_error_body(request, str(exc)), status_code=404)


async def _on_invalid_backend(request: Request, exc: InvalidBackendError) -> JSONResponse:
    extra: Dict[str, Any] = {"backend_id": exc.backend_id}
    if isinstance(exc, ConfigurationError):
        extra["field"] = exc.field
    return JSONResponse(_error_body(request, str(exc), **extra), status_code=422)


async def _on_backend_error(request: Request, exc: BackendError) -> JSONResponse:
    log.error("Backend call failed outside the dispatcher: %s", exc, extra={"backend": exc.backend_id})
    return JSONResponse(_error_body(request, str(exc), backend_id=exc.backend_id), status_code=502)


async def _on_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        _error_body(request, exc.detail or type(exc).__name__),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Error contexts may hold exception instances.
    detail = jsonable_encoder(exc.errors())
    return JSONResponse(_error_body(request, "ValidationError", detail=detail), status_code=422)


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(_error_body(request, "Internal Server Error"), status_code=500)


# Looked up along the exception MRO, so ConfigurationError lands on InvalidBackendError.
ERROR_HANDLERS = (
    (NotFoundError, _on_not_found),
    (InvalidBackendError, _on_invalid_backend),
    (BackendError, _on_backend_error),
    (RequestValidationError, _on_validation_error),
    (HTTPException, _on_http_exception),
    (Exception, _on_unhandled),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    log.info("%s %s starting.", settings.APP_NAME, __version__)

    init_db()

    try:
        reconcile_scheduler.start_scheduler(app)
    except Exception:
        # Pending tasks can still be run through POST /tasks/execute.
        log.exception("Reconciliation scheduler did not start.")

    try:
        yield
    finally:
        reconcile_scheduler.stop_scheduler(app)
        close_db()
        log.info("%s stopped.", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.scheduler = None

    # Starlette wraps in reverse order: request ids are assigned before logging.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS or ["*"],
        allow_methods=["*"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time-ms"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    for exc_class, handler in ERROR_HANDLERS:
        app.add_exception_handler(exc_class, handler)

    app.include_router(get_api_router())

    @app.get("/", tags=["health"])
    async def index() -> Dict[str, str]:
        return {"service": "search-api", "version": __version__, "status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
