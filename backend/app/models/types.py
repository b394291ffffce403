from __future__ import annotations

from array import array
from typing import Any, List, Optional, Sequence

from pgvector.sqlalchemy import Vector
from sqlalchemy import LargeBinary
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine


class EmbeddingVector(TypeDecorator):
    """Fixed-dimension float vector.

    Stored as a pgvector ``vector(N)`` on PostgreSQL and as packed float32
    bytes everywhere else.
    """

    impl = LargeBinary
    cache_ok = True

    def __init__(self, dimensions: int) -> None:
        super().__init__()
        self.dimensions = dimensions

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector(self.dimensions))
        return dialect.type_descriptor(LargeBinary())

    def process_bind_param(self, value: Optional[Sequence[float]], dialect: Dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return [float(item) for item in value]
        return array("f", value).tobytes()

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[List[float]]:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return [float(item) for item in value]
        unpacked = array("f")
        unpacked.frombytes(bytes(value))
        return unpacked.tolist()
