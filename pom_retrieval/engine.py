"""Wiring of repository, embedding cache and provider into a search engine."""

from __future__ import annotations

from typing import Optional

import requests

from pom_retrieval.cache import EmbeddingCache
from pom_retrieval.clients.ollama import OllamaClient
from pom_retrieval.config import RetrievalConfig
from pom_retrieval.hybrid.embeddings import CachedEmbedder, Embedder, OllamaEmbedder
from pom_retrieval.hybrid.hybrid_index import HybridSearchEngine
from pom_retrieval.repository import FileSystemModelRepository, JsonModelLoader
from pom_retrieval.settings import HttpSettings


def build_cache(config: RetrievalConfig) -> EmbeddingCache:
    return EmbeddingCache(config.cache_options())


def build_repository(config: RetrievalConfig) -> FileSystemModelRepository:
    loader = JsonModelLoader(
        schema_suffix=config.schema_file_suffix, strict=config.strict_model_loading
    )
    return FileSystemModelRepository(config.models_dir, loader=loader)


def build_embedder(
    config: RetrievalConfig,
    *,
    cache: Optional[EmbeddingCache] = None,
    session: Optional[requests.Session] = None,
) -> CachedEmbedder:
    http = HttpSettings(
        timeout=config.request_timeout_s,
        base_url=str(config.ollama_base_url),
        session=session,
    )
    client = OllamaClient(
        config.embedding_model,
        session=http.build_session(),
        base_url=http.base_url,
        timeout=http.timeout,
    )
    return CachedEmbedder(OllamaEmbedder(client), cache if cache is not None else build_cache(config))


def build_search_engine(
    config: Optional[RetrievalConfig] = None,
    *,
    embedder: Optional[Embedder] = None,
    repository: Optional[FileSystemModelRepository] = None,
) -> HybridSearchEngine:
    """Create a :class:`HybridSearchEngine` from configuration.

    ``embedder`` and ``repository`` override the configured collaborators, which
    is mostly useful in tests and notebooks.
    """

    config = config or RetrievalConfig()
    return HybridSearchEngine(
        repository or build_repository(config),
        embedder or build_embedder(config),
        options=config.search_options(),
    )


__all__ = ["build_cache", "build_embedder", "build_repository", "build_search_engine"]
