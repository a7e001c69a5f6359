"""
Module: vector_store.py
Description: Chunk store with similarity search.

Implementations:
    - MemoryVectorStore: in-process dict with a cosine-similarity scan
    - PgVectorStore: PostgreSQL + pgvector through SQLAlchemy Core

Both satisfy the VectorStore interface: store, store_batch, search,
delete_by_source_id and count. Search returns the matching chunks and their
cosine similarities, best first.

Author: Statement Engine Team
"""

import json
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from statement_engine.config import Settings
from statement_engine.observability import logger, metrics


class VectorStoreError(RuntimeError):
    """Invalid chunk or a failing storage backend."""


@dataclass
class Chunk:
    id: str
    source_id: str
    content: str
    embedding: Optional[np.ndarray] = None
    metadata: Dict[str, object] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0


def cosine_similarity(a, b) -> float:
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape:
        return 0.0
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class VectorStore(ABC):

    @abstractmethod
    def store(self, chunk: Chunk) -> None:
        ...

    @abstractmethod
    def store_batch(self, chunks: Sequence[Chunk]) -> int:
        ...

    @abstractmethod
    def search(self, query_embedding, top_k: int = 5, source_id: str = "") -> Tuple[List[Chunk], List[float]]:
        ...

    @abstractmethod
    def delete_by_source_id(self, source_id: str) -> int:
        ...

    @abstractmethod
    def count(self) -> int:
        ...


def _check_chunk(chunk: Chunk) -> None:
    if not chunk.id:
        raise VectorStoreError("chunk id cannot be empty")
    if not chunk.has_embedding:
        raise VectorStoreError(f"chunk {chunk.id} has no embedding")


# =============================================================================
# In-memory store
# =============================================================================

class MemoryVectorStore(VectorStore):
    """Thread-safe dict of chunks; search is a full cosine scan."""

    def __init__(self):
        self._chunks: Dict[str, Chunk] = {}
        self._lock = threading.RLock()

    def store(self, chunk: Chunk) -> None:
        _check_chunk(chunk)
        with self._lock:
            self._chunks[chunk.id] = chunk

    def store_batch(self, chunks: Sequence[Chunk]) -> int:
        """Store every valid chunk; chunks without an id or embedding are skipped."""
        stored = 0
        with self._lock:
            for chunk in chunks:
                if not chunk.id or not chunk.has_embedding:
                    continue
                self._chunks[chunk.id] = chunk
                stored += 1
        return stored

    def search(self, query_embedding, top_k: int = 5, source_id: str = "") -> Tuple[List[Chunk], List[float]]:
        with self._lock:
            candidates = [
                c for c in self._chunks.values()
                if c.has_embedding and (not source_id or c.source_id == source_id)
            ]
        scored = [(cosine_similarity(query_embedding, c.embedding), c) for c in candidates]
        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        top = scored[:max(top_k, 0)]
        return [c for _, c in top], [s for s, _ in top]

    def delete_by_source_id(self, source_id: str) -> int:
        with self._lock:
            doomed = [cid for cid, c in self._chunks.items() if c.source_id == source_id]
            for cid in doomed:
                del self._chunks[cid]
        return len(doomed)

    def count(self) -> int:
        with self._lock:
            return len(self._chunks)


# =============================================================================
# PostgreSQL + pgvector store
# =============================================================================

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def to_vector_literal(embedding) -> str:
    return "[" + ",".join(f"{float(v):.7g}" for v in embedding) + "]"


def from_vector_literal(value) -> np.ndarray:
    if isinstance(value, str):
        value = json.loads(value)
    return np.asarray(value, dtype=np.float32)


class PgVectorStore(VectorStore):
    """
    Chunks in a pgvector table.

    Usage:
        store = PgVectorStore.from_settings(Settings.from_env())
        store.ensure_schema()
        store.store_batch(chunks)
    """

    def __init__(self, engine: Engine, table: str = "statement_chunks", dims: int = 4096):
        if not _TABLE_NAME.match(table):
            raise VectorStoreError(f"invalid table name {table!r}")
        self.engine = engine
        self.table = table
        self.dims = dims

    @classmethod
    def from_settings(cls, settings: Settings) -> "PgVectorStore":
        if not settings.postgres_dsn:
            raise VectorStoreError("POSTGRES_DSN is not configured")
        engine = create_engine(settings.postgres_dsn, pool_pre_ping=True)
        return cls(engine, table=settings.vector_table, dims=settings.embedding_dims)

    def ensure_schema(self) -> None:
        """Create the table and indexes. The vector extension must already be installed."""
        try:
            with self.engine.begin() as conn:
                installed = conn.execute(
                    text("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
                ).first()
                if installed is None:
                    raise VectorStoreError("pgvector extension is not installed (CREATE EXTENSION vector)")
                conn.execute(text(
                    f"CREATE TABLE IF NOT EXISTS {self.table} ("
                    "id TEXT PRIMARY KEY, "
                    "source_id TEXT NOT NULL, "
                    "content TEXT NOT NULL, "
                    f"embedding vector({int(self.dims)}), "
                    "metadata JSONB, "
                    "created_at TIMESTAMP DEFAULT NOW())"
                ))
                conn.execute(text(
                    f"CREATE INDEX IF NOT EXISTS {self.table}_embedding_idx ON {self.table} "
                    "USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
                ))
                conn.execute(text(
                    f"CREATE INDEX IF NOT EXISTS {self.table}_source_id_idx ON {self.table}(source_id)"
                ))
        except SQLAlchemyError as e:
            raise VectorStoreError(f"failed to create chunk table: {e}") from e
        logger.info("Chunk table ready", table=self.table, dims=self.dims)

    def _upsert_sql(self):
        return text(
            f"INSERT INTO {self.table} (id, source_id, content, embedding, metadata) "
            "VALUES (:id, :source_id, :content, CAST(:embedding AS vector), CAST(:metadata AS JSONB)) "
            "ON CONFLICT (id) DO UPDATE SET "
            "source_id = EXCLUDED.source_id, content = EXCLUDED.content, "
            "embedding = EXCLUDED.embedding, metadata = EXCLUDED.metadata"
        )

    @staticmethod
    def _params(chunk: Chunk) -> dict:
        return {
            "id": chunk.id,
            "source_id": chunk.source_id,
            "content": chunk.content,
            "embedding": to_vector_literal(chunk.embedding),
            "metadata": json.dumps(chunk.metadata or {}, default=str),
        }

    def store(self, chunk: Chunk) -> None:
        _check_chunk(chunk)
        self._execute(self._upsert_sql(), [self._params(chunk)])

    def store_batch(self, chunks: Sequence[Chunk]) -> int:
        rows = [self._params(c) for c in chunks if c.id and c.has_embedding]
        if rows:
            self._execute(self._upsert_sql(), rows)
        metrics.increment("vector_store.chunks_stored", len(rows))
        return len(rows)

    def search(self, query_embedding, top_k: int = 5, source_id: str = "") -> Tuple[List[Chunk], List[float]]:
        where = "WHERE source_id = :source_id " if source_id else ""
        sql = text(
            f"SELECT id, source_id, content, embedding, metadata, created_at, "
            f"1 - (embedding <=> CAST(:query AS vector)) AS similarity "
            f"FROM {self.table} {where}"
            "ORDER BY embedding <=> CAST(:query AS vector) "
            "LIMIT :top_k"
        )
        params = {"query": to_vector_literal(query_embedding), "top_k": int(top_k)}
        if source_id:
            params["source_id"] = source_id
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(sql, params).mappings().all()
        except SQLAlchemyError as e:
            raise VectorStoreError(f"similarity search failed: {e}") from e

        chunks, scores = [], []
        for row in rows:
            metadata = row["metadata"]
            if isinstance(metadata, str):
                metadata = json.loads(metadata)
            chunks.append(Chunk(
                id=row["id"],
                source_id=row["source_id"],
                content=row["content"],
                embedding=from_vector_literal(row["embedding"]) if row["embedding"] is not None else None,
                metadata=metadata or {},
                created_at=row["created_at"],
            ))
            scores.append(float(row["similarity"]))
        return chunks, scores

    def delete_by_source_id(self, source_id: str) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    text(f"DELETE FROM {self.table} WHERE source_id = :source_id"),
                    {"source_id": source_id},
                )
        except SQLAlchemyError as e:
            raise VectorStoreError(f"delete failed: {e}") from e
        return int(result.rowcount or 0)

    def count(self) -> int:
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(text(f"SELECT COUNT(*) FROM {self.table}")).scalar() or 0)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"count failed: {e}") from e

    def _execute(self, sql, rows: list) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(sql, rows)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"failed to store chunks: {e}") from e
