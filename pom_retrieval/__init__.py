"""Hybrid retrieval of page object model utterances for web automation."""

from __future__ import annotations

from .cache import CacheStatistics, EmbeddingCache, EmbeddingCacheOptions
from .config import RetrievalConfig
from .engine import build_search_engine
from .hybrid import (
    CachedEmbedder,
    HybridSearchEngine,
    IndexStatistics,
    SearchOptions,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchScope,
    UtteranceType,
)
from .models import PageElement, PageObjectModel, PageStep, PageTask
from .repository import FileSystemModelRepository, JsonModelLoader

__version__ = "0.1.0"

__all__ = [
    "CacheStatistics",
    "CachedEmbedder",
    "EmbeddingCache",
    "EmbeddingCacheOptions",
    "FileSystemModelRepository",
    "HybridSearchEngine",
    "IndexStatistics",
    "JsonModelLoader",
    "PageElement",
    "PageObjectModel",
    "PageStep",
    "PageTask",
    "RetrievalConfig",
    "SearchOptions",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchScope",
    "UtteranceType",
    "build_search_engine",
]
