from .chat import ChatMessage, ChatRequest, ChatResponse, ModelsResponse
from .rag import (
    DocumentCreatedResponse,
    DocumentCreateRequest,
    DocumentDeletedResponse,
    DocumentResponse,
    DocumentUpdateRequest,
    RAGQueryRequest,
    RAGQueryResponse,
    RAGResultResponse,
)

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ModelsResponse",
    "RAGQueryRequest",
    "RAGQueryResponse",
    "RAGResultResponse",
    "DocumentCreateRequest",
    "DocumentUpdateRequest",
    "DocumentCreatedResponse",
    "DocumentResponse",
    "DocumentDeletedResponse",
]
