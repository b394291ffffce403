from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from ..core.dependencies import get_chat_service, get_current_user, get_localai_service
from ..core.errors import GatewayError
from ..schemas import ChatRequest, ChatResponse, ModelsResponse
from ..schemas.auth import AuthenticatedUser
from ..services.chat import ChatService
from ..services.localai import LocalAIService
from ..utils.timing import elapsed_ms, utc_timestamp

router = APIRouter(prefix="/chat", tags=["chat"])

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    stream: Optional[bool] = Query(default=None),
    current_user: AuthenticatedUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    started_at = time.perf_counter()
    if stream is not None:
        payload.stream = stream

    try:
        chat_service.accept(payload, user_id=current_user.id)
        if payload.stream:
            return StreamingResponse(
                chat_service.stream_events(payload, user_id=current_user.id, started_at=started_at),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )
        return await chat_service.complete(payload, user_id=current_user.id, started_at=started_at)
    except GatewayError as exc:
        logger.error(
            "Chat request failed user=%s error=%s processing_time_ms=%d",
            current_user.id,
            exc.message,
            elapsed_ms(started_at),
        )
        raise


@router.get("/models", response_model=ModelsResponse)
async def list_models(
    current_user: AuthenticatedUser = Depends(get_current_user),
    localai: LocalAIService = Depends(get_localai_service),
):
    try:
        models = await localai.get_models()
    except GatewayError as exc:
        logger.error("Failed to fetch models: %s", exc.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch available models",
        ) from exc
    return ModelsResponse(models=models, current_model=localai.model, timestamp=utc_timestamp())
