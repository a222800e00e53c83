from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from pom_retrieval.cache import CacheStatistics, EmbeddingCache
from pom_retrieval.clients.ollama import OllamaClient

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Asynchronous embedding interface for pluggable models."""

    async def embed(self, text: str) -> Sequence[float]:
        """Return the vector representation of ``text``."""


class OllamaEmbedder:
    """Adapt the blocking :class:`OllamaClient` to the async :class:`Embedder` interface."""

    def __init__(self, client: OllamaClient) -> None:
        self.client = client

    @property
    def model_name(self) -> str:
        return self.client.model

    async def embed(self, text: str) -> Sequence[float]:
        return await asyncio.to_thread(self.client.embed, text)


class CachedEmbedder:
    """Serve embeddings from :class:`EmbeddingCache`, generating and storing them on a miss.

    Cache problems only ever cost a regeneration; errors raised by the wrapped
    provider propagate unchanged.
    """

    def __init__(self, embedder: Embedder, cache: Optional[EmbeddingCache] = None) -> None:
        self.embedder = embedder
        self.cache = cache

    async def embed(self, text: str) -> Sequence[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be null or empty")

        logger.debug("Generating embedding for text: %d characters", len(text))

        if self.cache is not None:
            cached = await self.cache.get(text)
            if cached is not None:
                logger.debug("Using cached embedding for text")
                return cached

        vector = await self.embedder.embed(text)

        if self.cache is not None:
            await self.cache.put(text, vector)
            logger.debug("Generated and cached new embedding")
        return vector

    def get_cache_statistics(self) -> CacheStatistics:
        if self.cache is None:
            return CacheStatistics()
        return self.cache.get_statistics()


__all__ = ["CachedEmbedder", "Embedder", "OllamaEmbedder"]
