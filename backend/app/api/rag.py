from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..core.dependencies import get_current_user, get_rag_service
from ..schemas import (
    DocumentCreatedResponse,
    DocumentCreateRequest,
    DocumentDeletedResponse,
    DocumentResponse,
    DocumentUpdateRequest,
    RAGQueryRequest,
    RAGQueryResponse,
)
from ..schemas.auth import AuthenticatedUser
from ..services.rag import RAGService
from ..utils.timing import utc_timestamp

router = APIRouter(prefix="/rag", tags=["rag"])


@router.post("/query", response_model=RAGQueryResponse, response_model_exclude_none=True)
async def query_rag(
    payload: RAGQueryRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    rag_service: RAGService = Depends(get_rag_service),
):
    return await rag_service.query(payload, user_id=current_user.id)


@router.post("/documents", response_model=DocumentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    payload: DocumentCreateRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    rag_service: RAGService = Depends(get_rag_service),
):
    return await rag_service.ingest(payload, user_id=current_user.id)


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    rag_service: RAGService = Depends(get_rag_service),
):
    return await rag_service.get_document(document_id, user_id=current_user.id)


@router.patch("/documents/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str,
    payload: DocumentUpdateRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    rag_service: RAGService = Depends(get_rag_service),
):
    return await rag_service.update_document(document_id, payload, user_id=current_user.id)


@router.delete("/documents/{document_id}", response_model=DocumentDeletedResponse)
async def delete_document(
    document_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    rag_service: RAGService = Depends(get_rag_service),
):
    await rag_service.delete_document(document_id, user_id=current_user.id)
    return DocumentDeletedResponse(
        message="Document deleted successfully",
        document_id=document_id,
        timestamp=utc_timestamp(),
    )
