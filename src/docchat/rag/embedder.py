"""Embedding client: batched LiteLLM embeddings for chunks and queries.

``embed()`` is all-or-nothing: if any batch fails, times out, or comes back
malformed, the call raises EmbeddingProviderError and no vectors are returned,
so nothing partial reaches the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import litellm

from docchat.errors import EmbeddingProviderError

logger = logging.getLogger(__name__)


class Embedder:
    """Turn texts into fixed-dimension vectors via an external provider.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; responses of another length fail.
        batch_size: Maximum texts per provider call.
        timeout: Seconds allowed per provider call.
        num_retries: LiteLLM retries on transient errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        batch_size: int = 64,
        timeout: float = 30.0,
        num_retries: int = 2,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.timeout = timeout
        self.num_retries = num_retries

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, one vector per input, in input order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        return (await self._embed_batch([text]))[0]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await asyncio.wait_for(
                litellm.aembedding(
                    model=self.model,
                    input=batch,
                    num_retries=self.num_retries,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingProviderError(
                f"Embedding model '{self.model}' timed out after {self.timeout:.0f}s."
            ) from exc
        except Exception as exc:
            raise EmbeddingProviderError(
                f"Embedding model '{self.model}' call failed: {exc}"
            ) from exc

        # Providers may return items out of order; "index" restores it.
        items = sorted(response.data, key=lambda item: _field(item, "index", 0))
        if len(items) != len(batch):
            raise EmbeddingProviderError(
                f"Embedding model '{self.model}' returned {len(items)} vectors for {len(batch)} inputs."
            )

        vectors = [list(_field(item, "embedding", [])) for item in items]
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingProviderError(
                    f"Embedding model '{self.model}' returned {len(vector)} dimensions, "
                    f"expected {self.dimensions}. Check embedding.dimensions."
                )
        logger.debug("Embedded batch of %d texts with %s", len(batch), self.model)
        return vectors


def _field(item: object, name: str, default: object) -> object:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)
