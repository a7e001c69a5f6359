"""
Test Module: test_vector_store.py
Description: Unit tests for the chunk stores.

Tests:
    - Cosine similarity helper and vector literals
    - In-memory store, search ranking and source filtering
    - pgvector store SQL round trips against a mocked SQLAlchemy engine

Author: Statement Engine Team
"""

import json

import numpy as np
import pytest
from unittest.mock import MagicMock
from sqlalchemy.exc import SQLAlchemyError

from statement_engine.config import Settings
from statement_engine.vector_store import (
    Chunk,
    MemoryVectorStore,
    PgVectorStore,
    VectorStoreError,
    cosine_similarity,
    from_vector_literal,
    to_vector_literal,
)


def chunk(cid, vector, source_id="stmt-1", content="text"):
    embedding = None if vector is None else np.asarray(vector, dtype=np.float32)
    return Chunk(id=cid, source_id=source_id, content=content, embedding=embedding)


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:
    """Tests for similarity and literal conversion."""

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [1, 1]) == pytest.approx(0.7071, abs=1e-4)

    def test_cosine_degenerate(self):
        """Test zero vectors and mismatched shapes score zero."""
        assert cosine_similarity([0, 0], [1, 0]) == 0.0
        assert cosine_similarity([1, 0, 0], [1, 0]) == 0.0

    def test_vector_literal(self):
        assert to_vector_literal([1.0, 0.5, 0.25]) == "[1,0.5,0.25]"
        assert from_vector_literal("[1,0.5,0.25]").tolist() == [1.0, 0.5, 0.25]
        assert from_vector_literal([2, 3]).dtype == np.float32


# =============================================================================
# Memory Store
# =============================================================================

class TestMemoryVectorStore:
    """Tests for MemoryVectorStore."""

    @pytest.fixture
    def store(self):
        store = MemoryVectorStore()
        store.store(chunk("a", [1, 0]))
        store.store(chunk("b", [0, 1]))
        store.store(chunk("c", [1, 1], source_id="stmt-2"))
        return store

    def test_search_ranked(self, store):
        chunks, scores = store.search([1, 0], top_k=2)
        assert [c.id for c in chunks] == ["a", "c"]
        assert scores[0] == pytest.approx(1.0)
        assert scores[0] >= scores[1]

    def test_search_by_source(self, store):
        chunks, _ = store.search([1, 0], top_k=5, source_id="stmt-2")
        assert [c.id for c in chunks] == ["c"]

    def test_store_rejects_invalid(self):
        store = MemoryVectorStore()
        with pytest.raises(VectorStoreError):
            store.store(chunk("", [1, 0]))
        with pytest.raises(VectorStoreError):
            store.store(chunk("x", None))

    def test_store_batch_skips_invalid(self):
        store = MemoryVectorStore()
        stored = store.store_batch([chunk("a", [1, 0]), chunk("", [1, 0]), chunk("b", None)])
        assert stored == 1
        assert store.count() == 1

    def test_upsert_and_delete(self, store):
        store.store(chunk("a", [0, 1], content="replaced"))
        assert store.count() == 3
        assert store.delete_by_source_id("stmt-1") == 2
        assert store.count() == 1


# =============================================================================
# pgvector Store
# =============================================================================

class TestPgVectorStore:
    """Tests for PgVectorStore against a mocked engine."""

    @pytest.fixture
    def conn(self):
        return MagicMock()

    @pytest.fixture
    def store(self, conn):
        engine = MagicMock()
        engine.begin.return_value.__enter__.return_value = conn
        engine.connect.return_value.__enter__.return_value = conn
        return PgVectorStore(engine, table="statement_chunks", dims=3)

    def test_invalid_table_name(self):
        with pytest.raises(VectorStoreError):
            PgVectorStore(MagicMock(), table="chunks; DROP TABLE x")

    def test_missing_dsn(self):
        with pytest.raises(VectorStoreError):
            PgVectorStore.from_settings(Settings(postgres_dsn=""))

    def test_ensure_schema_requires_extension(self, store, conn):
        conn.execute.return_value.first.return_value = None
        with pytest.raises(VectorStoreError, match="pgvector"):
            store.ensure_schema()

    def test_ensure_schema(self, store, conn):
        conn.execute.return_value.first.return_value = (1,)
        store.ensure_schema()

        statements = [str(call.args[0]) for call in conn.execute.call_args_list]
        assert any("CREATE TABLE IF NOT EXISTS statement_chunks" in s for s in statements)
        assert any("vector(3)" in s for s in statements)

    def test_store_parameters(self, store, conn):
        store.store(Chunk(id="c1", source_id="stmt-1", content="salary credit",
                          embedding=np.array([1.0, 0.5, 0.25]), metadata={"page": 1}))

        rows = conn.execute.call_args.args[1]
        assert rows == [{
            "id": "c1",
            "source_id": "stmt-1",
            "content": "salary credit",
            "embedding": "[1,0.5,0.25]",
            "metadata": json.dumps({"page": 1}),
        }]

    def test_store_rejects_empty_id(self, store, conn):
        with pytest.raises(VectorStoreError):
            store.store(chunk("", [1, 0, 0]))
        conn.execute.assert_not_called()

    def test_store_batch_counts_valid_rows(self, store, conn):
        stored = store.store_batch([chunk("a", [1, 0, 0]), chunk("b", None)])
        assert stored == 1
        assert len(conn.execute.call_args.args[1]) == 1

    def test_backend_failure(self, store, conn):
        conn.execute.side_effect = SQLAlchemyError("connection lost")
        with pytest.raises(VectorStoreError):
            store.store(chunk("a", [1, 0, 0]))

    def test_search_rows(self, store, conn):
        conn.execute.return_value.mappings.return_value.all.return_value = [{
            "id": "a",
            "source_id": "stmt-1",
            "content": "rent",
            "embedding": "[1,0,0]",
            "metadata": '{"page": 2}',
            "created_at": None,
            "similarity": 0.93,
        }]
        chunks, scores = store.search([1, 0, 0], top_k=1, source_id="stmt-1")

        assert chunks[0].id == "a"
        assert chunks[0].metadata == {"page": 2}
        assert chunks[0].embedding.tolist() == [1.0, 0.0, 0.0]
        assert scores == [0.93]
        params = conn.execute.call_args.args[1]
        assert params["source_id"] == "stmt-1"
        assert params["top_k"] == 1

    def test_count(self, store, conn):
        conn.execute.return_value.scalar.return_value = 7
        assert store.count() == 7

    def test_delete(self, store, conn):
        conn.execute.return_value.rowcount = 4
        assert store.delete_by_source_id("stmt-1") == 4
