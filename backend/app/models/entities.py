from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Index, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin
from .types import EmbeddingVector

# all-MiniLM-L6-v2 output size
EMBEDDING_DIMENSIONS = 384


class Document(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_created_at", "created_at"),
        Index(
            "documents_embedding_idx",
            "embedding",
            postgresql_using="ivfflat",
            postgresql_with={"lists": 100},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ).ddl_if(dialect="postgresql"),
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)
    meta_json: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), default=dict, nullable=False
    )
    embedding: Mapped[Optional[List[float]]] = mapped_column(EmbeddingVector(EMBEDDING_DIMENSIONS))
