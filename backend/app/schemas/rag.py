from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RAGQueryRequest(BaseModel):
    query: Optional[Any] = None
    limit: Optional[int] = None
    similarity_threshold: Optional[float] = None
    include_metadata: bool = True


class RAGResultResponse(BaseModel):
    document_id: str
    content: str
    similarity_score: float
    metadata: Optional[Dict[str, Any]] = None


class RAGQueryResponse(BaseModel):
    results: List[RAGResultResponse]
    query: str
    total_results: int
    processing_time_ms: int


class DocumentCreateRequest(BaseModel):
    content: Optional[Any] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DocumentUpdateRequest(BaseModel):
    content: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None


class DocumentCreatedResponse(BaseModel):
    document_id: str
    content_length: int
    embedding_dimensions: int
    processing_time_ms: int
    timestamp: str


class DocumentResponse(BaseModel):
    id: str
    content: str
    metadata: Dict[str, Any]
    created_at: dt.datetime
    updated_at: dt.datetime


class DocumentDeletedResponse(BaseModel):
    message: str
    document_id: str
    timestamp: str
