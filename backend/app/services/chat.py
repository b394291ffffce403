from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict

from ..core.errors import ValidationError
from ..schemas import ChatRequest, ChatResponse
from ..utils.timing import elapsed_ms, utc_timestamp
from .localai import LocalAIService

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10_000
SSE_DONE_FRAME = "data: [DONE]\n\n"


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


def validate_chat_request(request: ChatRequest) -> None:
    message = request.message
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required and must be a non-empty string")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError("Message too long (max 10,000 characters)")


class ChatService:
    """Forwards chat requests to LocalAI as JSON or as re-framed SSE events."""

    def __init__(self, localai: LocalAIService) -> None:
        self.localai = localai

    def accept(self, request: ChatRequest, *, user_id: str) -> None:
        validate_chat_request(request)
        logger.info(
            "Chat request received user=%s length=%d stream=%s temperature=%s max_tokens=%s",
            user_id,
            len(request.message),
            request.stream,
            request.temperature,
            request.max_tokens,
        )

    async def complete(self, request: ChatRequest, *, user_id: str, started_at: float) -> ChatResponse:
        completion = await self.localai.chat(request)
        processing_time = elapsed_ms(started_at)
        logger.info(
            "Chat completed user=%s response_length=%d processing_time_ms=%d usage=%s",
            user_id,
            len(completion.message),
            processing_time,
            completion.usage,
        )
        return ChatResponse(
            message=completion.message,
            model=completion.model,
            usage=completion.usage,
            timestamp=completion.timestamp,
            processing_time_ms=processing_time,
        )

    async def stream_events(self, request: ChatRequest, *, user_id: str, started_at: float) -> AsyncIterator[str]:
        """Yield SSE frames: connection, chunk*, completion, [DONE].

        Headers are already committed once the first frame is sent, so a
        failure is reported as a final ``error`` frame instead of raised.
        """
        yield format_sse({"type": "connection", "status": "connected"})

        parts = []
        try:
            async with aclosing(self.localai.chat_stream(request)) as chunks:
                async for chunk in chunks:
                    if chunk.done:
                        yield format_sse(
                            {
                                "type": "completion",
                                "content": "".join(parts),
                                "processing_time_ms": elapsed_ms(started_at),
                                "model": self.localai.model,
                                "timestamp": utc_timestamp(),
                            }
                        )
                        yield SSE_DONE_FRAME
                        break
                    parts.append(chunk.content)
                    yield format_sse({"type": "chunk", "content": chunk.content})
        except Exception as exc:
            logger.error(
                "Streaming chat failed user=%s processing_time_ms=%d error=%s",
                user_id,
                elapsed_ms(started_at),
                exc,
            )
            yield format_sse({"type": "error", "error": str(exc) or "Unknown streaming error"})
            return

        logger.info(
            "Streaming chat completed user=%s response_length=%d processing_time_ms=%d",
            user_id,
            sum(len(part) for part in parts),
            elapsed_ms(started_at),
        )
