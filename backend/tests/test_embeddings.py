"""
Test Module: test_embeddings.py
Description: Unit tests for the embedding provider client.

Tests:
    - Request shape and response decoding
    - Retry on transport errors
    - Partial and total batch failure
    - Cancellation and chunk filling

Author: Statement Engine Team
"""

import asyncio
import json

import httpx
import numpy as np
import pytest

from statement_engine.anomaly_types import CancellationToken, OperationCancelled
from statement_engine.config import Settings
from statement_engine.embeddings import EmbeddingBatchError, EmbeddingClient, ProviderError
from statement_engine.vector_store import Chunk


SETTINGS = Settings(ollama_url="http://ollama.test/", embedding_model="llama3", embedding_dims=3)


def make_client(handler, **kwargs):
    kwargs.setdefault("max_retries", 0)
    kwargs.setdefault("initial_delay", 0.0)
    return EmbeddingClient(SETTINGS, transport=httpx.MockTransport(handler), **kwargs)


def ok_handler(request):
    body = json.loads(request.content)
    if body["prompt"] == "bad":
        return httpx.Response(500, text="model crashed")
    return httpx.Response(200, json={"embedding": [0.1, 0.2, float(len(body["prompt"]))]})


# =============================================================================
# Single Request Tests
# =============================================================================

class TestGenerate:
    """Tests for generate()."""

    def test_request_and_vector(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"embedding": [1, 2, 3]})

        vector = asyncio.run(make_client(handler).generate("hello"))

        assert seen[0].url.path == "/api/embeddings"
        assert json.loads(seen[0].content) == {"model": "llama3", "prompt": "hello"}
        assert vector.dtype == np.float32
        assert vector.tolist() == [1.0, 2.0, 3.0]

    def test_http_error(self):
        client = make_client(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(ProviderError, match="status 503"):
            asyncio.run(client.generate("hello"))

    @pytest.mark.parametrize("payload", [{"vector": [1]}, {"embedding": []}])
    def test_unusable_body(self, payload):
        client = make_client(lambda request: httpx.Response(200, json=payload))
        with pytest.raises(ProviderError):
            asyncio.run(client.generate("hello"))

    def test_transport_error_retried(self):
        """Test a dropped connection is retried before giving up."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"embedding": [1, 2, 3]})

        vector = asyncio.run(make_client(handler, max_retries=1).generate("hello"))
        assert len(calls) == 2
        assert vector is not None

    def test_transport_error_exhausted(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError, match="Failed to reach"):
            asyncio.run(make_client(handler).generate("hello"))


# =============================================================================
# Batch Tests
# =============================================================================

class TestGenerateBatch:
    """Tests for generate_batch() and embed_chunks()."""

    def test_order_kept(self):
        texts = ["a", "bbb", "cc"]
        vectors = asyncio.run(make_client(ok_handler).generate_batch(texts))
        assert [v[2] for v in vectors] == [1.0, 3.0, 2.0]

    def test_partial_failure(self):
        """Test failed items come back as None without failing the batch."""
        vectors = asyncio.run(make_client(ok_handler).generate_batch(["a", "bad", "cc"]))
        assert vectors[0] is not None
        assert vectors[1] is None
        assert vectors[2] is not None

    def test_total_failure(self):
        with pytest.raises(EmbeddingBatchError):
            asyncio.run(make_client(ok_handler).generate_batch(["bad", "bad"]))

    def test_empty_batch(self):
        assert asyncio.run(make_client(ok_handler).generate_batch([])) == []

    def test_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            asyncio.run(make_client(ok_handler).generate_batch(["a", "b"], cancel_token=token))

    def test_embed_chunks(self):
        chunks = [
            Chunk(id="c1", source_id="stmt-1", content="a"),
            Chunk(id="c2", source_id="stmt-1", content="bad"),
        ]
        filled = asyncio.run(make_client(ok_handler).embed_chunks(chunks))

        assert filled == 1
        assert chunks[0].has_embedding
        assert chunks[1].embedding is None
