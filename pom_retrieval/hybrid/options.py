from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Sequence

ENGLISH_STOPWORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in",
        "into", "is", "it", "no", "not", "of", "on", "or", "such", "that", "the",
        "their", "then", "there", "these", "they", "this", "to", "was", "will",
        "with", "you", "your", "i", "we", "our", "from", "can", "could", "should",
        "would",
    }
)


@dataclass(frozen=True)
class SearchOptions:
    """Weights, boosts and lexical settings used by :class:`HybridSearchEngine`.

    ``min_embedding_threshold`` is not applied by the engine itself; it is the
    suggested ``min_similarity_threshold`` for callers building requests.
    """

    embedding_weight: float = 0.6
    lexical_weight: float = 0.4
    min_embedding_threshold: float = 0.2

    page_boost: float = 1.0
    element_boost: float = 1.05
    task_boost: float = 1.05
    step_boost: float = 1.0

    max_lexical_candidates: int = 500
    stopwords: FrozenSet[str] = ENGLISH_STOPWORDS
    synonyms: Mapping[str, Sequence[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_lexical_candidates < 1:
            raise ValueError("max_lexical_candidates must be at least 1")


__all__ = ["ENGLISH_STOPWORDS", "SearchOptions"]
