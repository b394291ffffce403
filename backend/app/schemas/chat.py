from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[str] = None


class ChatRequest(BaseModel):
    # message is checked by the chat service so that failures map to 400
    message: Optional[Any] = None
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    context: Optional[List[ChatMessage]] = None


class ChatResponse(BaseModel):
    message: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    timestamp: str
    processing_time_ms: int


class ModelsResponse(BaseModel):
    models: List[str]
    current_model: str
    timestamp: str
