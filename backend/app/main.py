from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import chat as chat_router, health as health_router, rag as rag_router
from .core.database import shutdown_executor
from .core.dependencies import get_config_service, get_document_store, get_localai_service
from .core.errors import GatewayError, status_label
from .core.log_config import configure_logging
from .utils.timing import elapsed_ms

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan_context(app: FastAPI):  # type: ignore[unused-argument]
    config = get_config_service().load()
    configure_logging(config.server.log_level)
    logger.info("Starting up gateway; model=%s store=%s", config.models.default_model, config.rag.store.backend)

    store = get_document_store()
    await store.initialize()
    logger.info("Startup initialization complete")
    try:
        yield
    finally:
        logger.info("Shutting down gateway")
        await get_localai_service().aclose()
        await store.close()
        await shutdown_executor()


app = FastAPI(
    title="LocalAI Gateway",
    version="1.0.0",
    lifespan=lifespan_context,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in get_config_service().get().server.cors_origin.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router.router)
app.include_router(chat_router.router)
app.include_router(rag_router.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request.state.started_at = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %s (%d ms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms(request.state.started_at),
    )
    return response


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    if status_code >= 500 and get_config_service().get().server.is_production:
        message = "Internal server error"
    body = {"error": status_label(status_code), "message": message}
    started_at = getattr(request.state, "started_at", None)
    if started_at is not None:
        body["processing_time_ms"] = elapsed_ms(started_at)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("Request error on %s %s: %s (%s)", request.method, request.url.path, exc.message, exc.status_code)
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _error_response(request, exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, str(exc) or "Internal server error")


def run() -> None:
    import uvicorn

    server = get_config_service().get().server
    uvicorn.run(app, host=server.host, port=server.port, log_level=server.log_level.lower())


if __name__ == "__main__":
    run()
