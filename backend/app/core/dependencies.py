from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from ..core.config import AppConfig
from ..schemas.auth import AuthenticatedUser
from ..services.chat import ChatService
from ..services.config_loader import ConfigService, create_config_service
from ..services.document_store import DocumentStore, create_document_store
from ..services.localai import LocalAIService
from ..services.rag import RAGService
from ..utils.security import decode_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_config_service() -> ConfigService:
    return create_config_service()


async def get_app_config() -> AppConfig:
    service = get_config_service()
    return service.get_app_config()


@lru_cache(maxsize=1)
def get_localai_service() -> LocalAIService:
    config = get_config_service().get()
    return LocalAIService(
        base_url=config.models.localai.base_url,
        model=config.models.default_model,
        embedding_model=config.rag.embedding_model,
        timeout_seconds=config.models.localai.request_timeout_seconds,
        health_timeout_seconds=config.models.localai.health_timeout_seconds,
        default_temperature=config.models.default_temperature,
        default_max_tokens=config.models.default_max_tokens,
    )


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    config = get_config_service().get()
    return create_document_store(config.rag.store)


def get_chat_service(localai: LocalAIService = Depends(get_localai_service)) -> ChatService:
    return ChatService(localai)


def get_rag_service(
    app_config: AppConfig = Depends(get_app_config),
    store: DocumentStore = Depends(get_document_store),
    localai: LocalAIService = Depends(get_localai_service),
) -> RAGService:
    return RAGService(config=app_config.rag, store=store, localai=localai)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    app_config: AppConfig = Depends(get_app_config),
) -> AuthenticatedUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        logger.warning("Missing or invalid authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    secret = app_config.secrets.jwt_secret
    if not secret:
        logger.error("JWT secret not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication not properly configured",
        )

    try:
        payload = decode_access_token(credentials.credentials, secret)
    except JWTError as exc:
        logger.warning("Invalid JWT token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    subject = payload.get("sub") or payload.get("id") or payload.get("userId")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.debug("Authenticated user: %s", subject)
    return AuthenticatedUser(id=str(subject), email=payload.get("email"), claims=payload)
