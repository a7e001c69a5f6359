"""
Module: embeddings.py
Description: Embedding provider client (Ollama-compatible HTTP API).

Features:
    - POST {base}/api/embeddings with {"model", "prompt"}
    - Exponential backoff retry for transport failures
    - Batch fan-out bounded to 5 concurrent requests, results kept in input order
    - Partial batches succeed; a batch where every item fails raises

Author: Statement Engine Team
"""

import asyncio
import time
from functools import wraps
from typing import List, Optional, Sequence

import httpx
import numpy as np

from statement_engine.anomaly_types import CancellationToken
from statement_engine.config import Settings
from statement_engine.observability import log_embedding_call, logger, metrics


class ProviderError(RuntimeError):
    """The embedding provider failed or returned an unusable response."""


class EmbeddingBatchError(ProviderError):
    """Every item of an embedding batch failed."""


# =============================================================================
# Retry Decorator with Exponential Backoff
# =============================================================================

def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_errors: tuple = None
):
    """
    Decorator for async functions that implements retry with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts.
        initial_delay: Initial delay in seconds before first retry.
        max_delay: Maximum delay between retries.
        exponential_base: Base for exponential backoff calculation.
        retryable_errors: Tuple of exception types to retry on.
    """
    if retryable_errors is None:
        retryable_errors = (Exception,)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delay = initial_delay
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_errors as e:
                    if attempt >= max_retries:
                        raise
                    logger.warning(
                        "Embedding request failed, retrying",
                        attempt=attempt + 1,
                        delay_s=round(delay, 2),
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * exponential_base, max_delay)
        return wrapper
    return decorator


class EmbeddingClient:
    """
    Async client for the embeddings endpoint.

    Usage:
        client = EmbeddingClient()
        vectors = asyncio.run(client.generate_batch(["first chunk", "second chunk"]))
    """

    MAX_CONCURRENCY = 5
    TIMEOUT_SECONDS = 60.0
    MAX_RETRIES = 2
    INITIAL_DELAY = 0.5

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.transport = transport
        self.max_retries = self.MAX_RETRIES if max_retries is None else max_retries
        self.initial_delay = self.INITIAL_DELAY if initial_delay is None else initial_delay

    @property
    def url(self) -> str:
        return f"{self.settings.ollama_url.rstrip('/')}/api/embeddings"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS, transport=self.transport)

    async def _post(self, client: httpx.AsyncClient, text: str) -> np.ndarray:
        response = await client.post(
            self.url,
            json={"model": self.settings.embedding_model, "prompt": text},
        )

        if response.status_code != 200:
            raise ProviderError(
                f"Embeddings API returned status {response.status_code}: {response.text[:200]}"
            )
        try:
            values = response.json()["embedding"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Malformed embedding response: {e}") from e
        if not values:
            raise ProviderError("Embeddings API returned an empty vector")
        return np.asarray(values, dtype=np.float64).astype(np.float32)

    async def generate(self, text: str, client: Optional[httpx.AsyncClient] = None) -> np.ndarray:
        """Embed one text. Transport errors are retried; HTTP and decode errors are not."""
        post = retry_with_backoff(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            retryable_errors=(httpx.TransportError,),
        )(self._post)

        if client is not None:
            return await self._call(post, client, text)
        async with self._client() as own:
            return await self._call(post, own, text)

    @staticmethod
    async def _call(post, client, text):
        try:
            return await post(client, text)
        except httpx.TransportError as e:
            raise ProviderError(f"Failed to reach embeddings API: {e}") from e

    async def generate_batch(
        self,
        texts: Sequence[str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Optional[np.ndarray]]:
        """
        Embed many texts with at most MAX_CONCURRENCY requests in flight.

        Returns:
            One entry per input text, in input order; failed items are None.

        Raises:
            EmbeddingBatchError: if no item succeeded.
            OperationCancelled: if the token was cancelled.
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.MAX_CONCURRENCY)
        total = len(texts)

        async def one(index: int, text: str, client: httpx.AsyncClient) -> Optional[np.ndarray]:
            async with semaphore:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                start = time.perf_counter()
                try:
                    vector = await self.generate(text, client)
                except ProviderError as e:
                    log_embedding_call(index, total, False, (time.perf_counter() - start) * 1000)
                    logger.warning("Embedding failed", index=index, error=str(e))
                    return None
                log_embedding_call(index, total, True, (time.perf_counter() - start) * 1000)
                return vector

        async with self._client() as client:
            results = await asyncio.gather(*(one(i, t, client) for i, t in enumerate(texts)))

        succeeded = sum(1 for r in results if r is not None)
        metrics.gauge("embeddings.batch_success_ratio", succeeded / total)
        if succeeded == 0:
            raise EmbeddingBatchError(f"Failed to generate any of {total} embeddings")
        logger.info("Embedding batch complete", succeeded=succeeded, total=total)
        return list(results)

    async def embed_chunks(self, chunks, cancel_token: Optional[CancellationToken] = None) -> int:
        """Fill `chunk.embedding` in place; returns how many chunks got a vector."""
        vectors = await self.generate_batch([c.content for c in chunks], cancel_token)
        filled = 0
        for chunk, vector in zip(chunks, vectors):
            if vector is not None:
                chunk.embedding = vector
                filled += 1
        return filled
