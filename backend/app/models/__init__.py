from .base import Base
from .entities import EMBEDDING_DIMENSIONS, Document

__all__ = [
    "Base",
    "Document",
    "EMBEDDING_DIMENSIONS",
]
