from __future__ import annotations

import abc
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, Select, bindparam, cast, delete, literal_column, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import StoreConfig
from ..core.database import AsyncSession, create_database_engine, get_db_session, normalize_database_url, run_sync
from ..core.errors import StoreError
from ..models import Base, Document

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    id: str
    content: str
    metadata: Dict[str, Any]
    embedding: Optional[List[float]]
    created_at: dt.datetime
    updated_at: dt.datetime


@dataclass
class RAGResult:
    document_id: str
    content: str
    similarity_score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def _to_stored(document: Document) -> StoredDocument:
    return StoredDocument(
        id=document.id,
        content=document.content,
        metadata=dict(document.meta_json or {}),
        embedding=document.embedding,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


class DocumentStore(abc.ABC):
    """Persistence and nearest-neighbour lookup for RAG documents."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    async def initialize(self) -> None:
        try:
            await self._prepare()
            await run_sync(Base.metadata.create_all, self.engine)
        except SQLAlchemyError as exc:
            logger.error("Document store initialization failed: %s", exc)
            raise StoreError(f"Failed to initialize document store: {exc}") from exc
        logger.info("Document store initialized (%s)", self.backend_name)

    async def _prepare(self) -> None:
        """Backend specific setup run before the schema is created."""

    async def close(self) -> None:
        await run_sync(self.engine.dispose)
        logger.info("Document store connections closed")

    @property
    @abc.abstractmethod
    def backend_name(self) -> str:
        raise NotImplementedError

    async def insert(
        self,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        embedding: Optional[Sequence[float]] = None,
    ) -> str:
        document = Document(
            content=content,
            meta_json=dict(metadata or {}),
            embedding=list(embedding) if embedding is not None else None,
        )
        async with get_db_session(self._session_factory) as session:
            try:
                session.add(document)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Error inserting document: %s", exc)
                raise StoreError(f"Failed to insert document: {exc}") from exc
        return document.id

    async def get(self, document_id: str) -> Optional[StoredDocument]:
        async with get_db_session(self._session_factory) as session:
            try:
                document = await session.get(Document, document_id)
            except SQLAlchemyError as exc:
                logger.error("Error getting document %s: %s", document_id, exc)
                raise StoreError(f"Failed to load document: {exc}") from exc
            if document is None:
                return None
            return _to_stored(document)

    async def update(
        self,
        document_id: str,
        *,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        embedding: Optional[Sequence[float]] = None,
    ) -> bool:
        if content is None and metadata is None and embedding is None:
            return False
        async with get_db_session(self._session_factory) as session:
            try:
                document = await session.get(Document, document_id)
                if document is None:
                    return False
                if content is not None:
                    document.content = content
                if metadata is not None:
                    document.meta_json = dict(metadata)
                if embedding is not None:
                    document.embedding = list(embedding)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Error updating document %s: %s", document_id, exc)
                raise StoreError(f"Failed to update document: {exc}") from exc
        return True

    async def delete(self, document_id: str) -> bool:
        async with get_db_session(self._session_factory) as session:
            try:
                result = await session.execute(delete(Document).where(Document.id == document_id))
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Error deleting document %s: %s", document_id, exc)
                raise StoreError(f"Failed to delete document: {exc}") from exc
        return (result.rowcount or 0) > 0

    async def search_similar(
        self,
        query_embedding: Sequence[float],
        limit: int = 5,
        threshold: float = 0.7,
    ) -> List[RAGResult]:
        async with get_db_session(self._session_factory) as session:
            try:
                return await self._search(session, query_embedding, limit, threshold)
            except SQLAlchemyError as exc:
                logger.error("Error searching similar documents: %s", exc)
                raise StoreError(f"Failed to search documents: {exc}") from exc

    @abc.abstractmethod
    async def _search(
        self,
        session: AsyncSession,
        query_embedding: Sequence[float],
        limit: int,
        threshold: float,
    ) -> List[RAGResult]:
        raise NotImplementedError

    async def health_check(self) -> bool:
        try:
            async with get_db_session(self._session_factory) as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.error("Database health check failed: %s", exc)
            return False


class PgVectorDocumentStore(DocumentStore):
    """Cosine similarity computed by pgvector, filtered and limited in SQL."""

    backend_name = "pgvector"

    async def _prepare(self) -> None:
        def _create_extension() -> None:
            with self.engine.begin() as connection:
                connection.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

        await run_sync(_create_extension)

    @staticmethod
    def search_statement(query_embedding: Sequence[float], limit: int, threshold: float) -> Select:
        query_vector = cast(
            bindparam("query_embedding", [float(v) for v in query_embedding], type_=Vector()),
            Vector(),
        )
        distance = Document.embedding.op("<=>", return_type=Float)(query_vector)
        similarity = (1 - distance).label("similarity_score")
        return (
            select(Document.id, Document.content, Document.meta_json, similarity)
            .where(Document.embedding.is_not(None))
            .where(1 - distance > threshold)
            .order_by(distance)
            .limit(limit)
        )

    async def _search(
        self,
        session: AsyncSession,
        query_embedding: Sequence[float],
        limit: int,
        threshold: float,
    ) -> List[RAGResult]:
        result = await session.execute(self.search_statement(query_embedding, limit, threshold))
        return [
            RAGResult(
                document_id=row.id,
                content=row.content,
                metadata=dict(row.meta_json or {}),
                similarity_score=float(row.similarity_score),
            )
            for row in result
        ]


class SQLiteDocumentStore(DocumentStore):
    """Degraded backend used when no vector extension is available.

    Returns the newest documents with a synthetic score of
    ``max(0.5, 1 - 0.1 * rank)``. ``threshold`` is accepted but not applied
    and the query embedding is ignored.
    """

    backend_name = "sqlite"

    async def _search(
        self,
        session: AsyncSession,
        query_embedding: Sequence[float],
        limit: int,
        threshold: float,
    ) -> List[RAGResult]:
        stmt = (
            select(Document)
            .where(Document.embedding.is_not(None))
            .order_by(Document.created_at.desc(), literal_column("documents.rowid").desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        documents = result.scalars().all()
        return [
            RAGResult(
                document_id=document.id,
                content=document.content,
                metadata=dict(document.meta_json or {}),
                similarity_score=max(0.5, 1 - rank * 0.1),
            )
            for rank, document in enumerate(documents)
        ]


def create_document_store(config: StoreConfig) -> DocumentStore:
    dialect = make_url(normalize_database_url(config.database_url)).get_backend_name()
    if config.backend == "pgvector" and dialect != "postgresql":
        raise StoreError("The pgvector backend requires a PostgreSQL database_url")
    if config.backend == "sqlite" and dialect != "sqlite":
        raise StoreError("The sqlite backend requires a SQLite database_url")

    engine = create_database_engine(
        config.database_url,
        pool_size=config.pool_size,
        pool_timeout=config.pool_timeout_seconds,
    )
    if config.backend == "pgvector":
        return PgVectorDocumentStore(engine)
    logger.warning("Using the degraded sqlite document store; similarity scores are synthetic")
    return SQLiteDocumentStore(engine)
