from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..core.config import RagConfig
from ..core.errors import NotFoundError, ValidationError
from ..schemas import (
    DocumentCreatedResponse,
    DocumentCreateRequest,
    DocumentResponse,
    DocumentUpdateRequest,
    RAGQueryRequest,
    RAGQueryResponse,
    RAGResultResponse,
)
from ..utils.timing import elapsed_ms, utc_timestamp
from .document_store import DocumentStore, StoredDocument
from .localai import LocalAIService

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 1_000
MAX_CONTENT_LENGTH = 50_000
MIN_LIMIT = 1
MAX_LIMIT = 20


def validate_query(payload: RAGQueryRequest, config: RagConfig) -> tuple[str, int, float]:
    """Return the query text, limit and threshold with defaults applied."""
    query = payload.query
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query is required and must be a non-empty string")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError("Query too long (max 1,000 characters)")

    limit = payload.limit if payload.limit is not None else config.default_limit
    if limit < MIN_LIMIT or limit > MAX_LIMIT:
        raise ValidationError("Limit must be between 1 and 20")

    threshold = (
        payload.similarity_threshold
        if payload.similarity_threshold is not None
        else config.default_similarity_threshold
    )
    if threshold < 0 or threshold > 1:
        raise ValidationError("Similarity threshold must be between 0 and 1")
    return query, limit, threshold


def validate_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Content is required and must be a non-empty string")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError("Content too long (max 50,000 characters)")
    return content


def to_document_response(document: StoredDocument) -> DocumentResponse:
    # raw embeddings are never exposed
    return DocumentResponse(
        id=document.id,
        content=document.content,
        metadata=document.metadata,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


class RAGService:
    def __init__(self, config: RagConfig, store: DocumentStore, localai: LocalAIService) -> None:
        self.config = config
        self.store = store
        self.localai = localai

    async def query(self, payload: RAGQueryRequest, *, user_id: str) -> RAGQueryResponse:
        started_at = time.perf_counter()
        query, limit, threshold = validate_query(payload, self.config)
        logger.info(
            "RAG query received user=%s query=%r limit=%d similarity_threshold=%s",
            user_id,
            query[:100] + ("..." if len(query) > 100 else ""),
            limit,
            threshold,
        )

        embedding = await self.localai.generate_embedding(query, self.config.embedding_model)
        results = await self.store.search_similar(embedding.embedding, limit, threshold)

        shaped = [
            RAGResultResponse(
                document_id=result.document_id,
                content=result.content,
                similarity_score=result.similarity_score,
                metadata=result.metadata if payload.include_metadata else None,
            )
            for result in results
        ]
        processing_time = elapsed_ms(started_at)
        average = sum(r.similarity_score for r in results) / len(results) if results else 0
        logger.info(
            "RAG query completed user=%s total_results=%d processing_time_ms=%d average_similarity=%.3f",
            user_id,
            len(results),
            processing_time,
            average,
        )
        return RAGQueryResponse(
            results=shaped,
            query=query,
            total_results=len(results),
            processing_time_ms=processing_time,
        )

    async def ingest(self, payload: DocumentCreateRequest, *, user_id: str) -> DocumentCreatedResponse:
        started_at = time.perf_counter()
        content = validate_content(payload.content)
        logger.info(
            "Adding document to RAG store user=%s content_length=%d has_metadata=%s",
            user_id,
            len(content),
            bool(payload.metadata),
        )

        embedding = await self.localai.generate_embedding(content, self.config.embedding_model)
        metadata: Dict[str, Any] = {
            **payload.metadata,
            "added_by": user_id,
            "content_length": len(content),
            "embedding_model": embedding.model,
        }
        document_id = await self.store.insert(content, metadata, embedding.embedding)

        processing_time = elapsed_ms(started_at)
        logger.info(
            "Document added to RAG store user=%s document_id=%s processing_time_ms=%d",
            user_id,
            document_id,
            processing_time,
        )
        return DocumentCreatedResponse(
            document_id=document_id,
            content_length=len(content),
            embedding_dimensions=len(embedding.embedding),
            processing_time_ms=processing_time,
            timestamp=utc_timestamp(),
        )

    async def get_document(self, document_id: str, *, user_id: str) -> DocumentResponse:
        logger.debug("Retrieving document user=%s document_id=%s", user_id, document_id)
        document = await self.store.get(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return to_document_response(document)

    async def update_document(
        self,
        document_id: str,
        payload: DocumentUpdateRequest,
        *,
        user_id: str,
    ) -> DocumentResponse:
        if payload.content is None and payload.metadata is None:
            raise ValidationError("No fields to update")
        content: Optional[str] = None
        embedding = None
        if payload.content is not None:
            content = validate_content(payload.content)

        existing = await self.store.get(document_id)
        if existing is None:
            raise NotFoundError("Document not found")

        metadata = None
        if payload.metadata is not None:
            metadata = {**payload.metadata, "updated_by": user_id}
        if content is not None:
            result = await self.localai.generate_embedding(content, self.config.embedding_model)
            embedding = result.embedding
            metadata = {
                **(metadata if metadata is not None else existing.metadata),
                "updated_by": user_id,
                "content_length": len(content),
                "embedding_model": result.model,
            }

        logger.info("Updating document user=%s document_id=%s", user_id, document_id)
        updated = await self.store.update(document_id, content=content, metadata=metadata, embedding=embedding)
        if not updated:
            raise NotFoundError("Document not found")
        document = await self.store.get(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return to_document_response(document)

    async def delete_document(self, document_id: str, *, user_id: str) -> None:
        logger.info("Deleting document user=%s document_id=%s", user_id, document_id)
        deleted = await self.store.delete(document_id)
        if not deleted:
            raise NotFoundError("Document not found")
