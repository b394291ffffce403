from __future__ import annotations

import asyncio
import logging
import platform
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.config import AppConfig
from ..core.dependencies import get_app_config, get_document_store, get_localai_service
from ..services.document_store import DocumentStore
from ..services.localai import LocalAIService
from ..utils.timing import elapsed_ms, utc_timestamp

router = APIRouter(prefix="/health", tags=["health"])

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()


def _uptime_seconds() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


@router.get("")
async def health(
    app_config: AppConfig = Depends(get_app_config),
    store: DocumentStore = Depends(get_document_store),
    localai: LocalAIService = Depends(get_localai_service),
):
    started_at = time.perf_counter()
    db_result, localai_result = await asyncio.gather(
        store.health_check(),
        localai.health_check(),
        return_exceptions=True,
    )
    db_healthy = db_result is True
    localai_healthy = localai_result is True
    overall = db_healthy and localai_healthy
    processing_time = elapsed_ms(started_at)

    logger.info(
        "Health check completed overall=%s database=%s localai=%s processing_time_ms=%d",
        overall,
        db_healthy,
        localai_healthy,
        processing_time,
    )

    payload = {
        "status": "healthy" if overall else "unhealthy",
        "timestamp": utc_timestamp(),
        "uptime": _uptime_seconds(),
        "version": app_config.server.version,
        "python_version": platform.python_version(),
        "services": {
            "database": {
                "status": "healthy" if db_healthy else "unhealthy",
                "backend": app_config.rag.store.backend,
            },
            "localai": {
                "status": "healthy" if localai_healthy else "unhealthy",
                "url": app_config.models.localai.base_url,
                "model": app_config.models.default_model,
            },
        },
        "environment": {
            "app_env": app_config.server.environment,
            "log_level": app_config.server.log_level,
        },
        "processing_time_ms": processing_time,
    }
    return JSONResponse(status_code=200 if overall else 503, content=payload)


@router.get("/ready")
async def ready(store: DocumentStore = Depends(get_document_store)):
    if await store.health_check():
        return {"status": "ready", "timestamp": utc_timestamp()}
    return JSONResponse(
        status_code=503,
        content={
            "status": "not ready",
            "reason": "Database not available",
            "timestamp": utc_timestamp(),
        },
    )


@router.get("/live")
async def live():
    return {"status": "alive", "timestamp": utc_timestamp(), "uptime": _uptime_seconds()}
