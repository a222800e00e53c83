"""Hybrid lexical + vector retrieval components."""

from .bm25_index import LexicalIndex, default_tokenizer
from .embeddings import CachedEmbedder, Embedder, OllamaEmbedder
from .hybrid_index import HybridSearchEngine, iter_utterances
from .models import (
    IndexedUtterance,
    IndexStatistics,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchResultContext,
    SearchScope,
    UtteranceType,
)
from .options import ENGLISH_STOPWORDS, SearchOptions
from .similarity import cosine_similarity

__all__ = [
    "CachedEmbedder",
    "ENGLISH_STOPWORDS",
    "Embedder",
    "HybridSearchEngine",
    "IndexStatistics",
    "IndexedUtterance",
    "LexicalIndex",
    "OllamaEmbedder",
    "SearchOptions",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchResultContext",
    "SearchScope",
    "UtteranceType",
    "cosine_similarity",
    "default_tokenizer",
    "iter_utterances",
]
