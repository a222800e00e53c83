from __future__ import annotations

import math
import re
from collections import defaultdict
from typing import AbstractSet, Callable, Dict, Iterable, List, Sequence

from .options import ENGLISH_STOPWORDS

TokenizeFn = Callable[[str], List[str]]

SPLIT_PATTERN = re.compile(r"[\s,.;:!?()\[\]{}\"'/_\-+]+")


def default_tokenizer(
    text: str, *, stopwords: AbstractSet[str] | None = ENGLISH_STOPWORDS, drop_empty: bool = True
) -> List[str]:
    if not text or not text.strip():
        return []

    tokens = SPLIT_PATTERN.split(text.lower())

    if drop_empty:
        tokens = [token for token in tokens if token]

    if stopwords:
        tokens = [token for token in tokens if token not in stopwords]

    return tokens


class LexicalIndex:
    """Inverted index with per-document statistics for BM25 scoring.

    Documents are added one by one and the average length is refreshed by an
    explicit :meth:`recompute_average_length` call once a rebuild is complete.
    Re-adding a document id without :meth:`clear` double counts its terms.
    """

    def __init__(
        self,
        *,
        tokenizer: TokenizeFn | None = None,
        stopwords: AbstractSet[str] | None = None,
        k1: float = 1.2,
        b: float = 0.75,
    ) -> None:
        stopword_set = ENGLISH_STOPWORDS if stopwords is None else stopwords
        self.tokenizer: TokenizeFn = tokenizer or (
            lambda text: default_tokenizer(text, stopwords=stopword_set)
        )
        self.k1 = k1
        self.b = b
        self._inverted_index: Dict[str, Dict[str, int]] = {}
        self._doc_lengths: Dict[str, int] = {}
        self._doc_tokens: Dict[str, List[str]] = {}
        self._avg_doc_len: float = 1.0

    @property
    def document_count(self) -> int:
        return len(self._doc_lengths)

    @property
    def avg_doc_length(self) -> float:
        return self._avg_doc_len

    def clear(self) -> None:
        self._inverted_index.clear()
        self._doc_lengths.clear()
        self._doc_tokens.clear()
        self._avg_doc_len = 1.0

    def add_document(self, doc_id: str, text: str) -> List[str]:
        tokens = self.tokenizer(text)
        self._doc_tokens[doc_id] = tokens
        self._doc_lengths[doc_id] = len(tokens)

        for token in tokens:
            postings = self._inverted_index.setdefault(token, {})
            postings[doc_id] = postings.get(doc_id, 0) + 1

        return tokens

    def recompute_average_length(self) -> float:
        if self._doc_lengths:
            self._avg_doc_len = sum(self._doc_lengths.values()) / len(self._doc_lengths)
        else:
            self._avg_doc_len = 1.0
        return self._avg_doc_len

    def postings(self, term: str) -> Dict[str, int]:
        return dict(self._inverted_index.get(term, {}))

    def doc_length(self, doc_id: str) -> int:
        return self._doc_lengths.get(doc_id, 0)

    def tokens_for(self, doc_id: str) -> List[str]:
        return list(self._doc_tokens.get(doc_id, []))

    def candidates(self, terms: Sequence[str], *, max_candidates: int) -> List[str]:
        """Return document ids sharing at least one term, capped by summed term frequency."""

        summed_tf: Dict[str, int] = defaultdict(int)
        for term in terms:
            for doc_id, tf in self._inverted_index.get(term, {}).items():
                summed_tf[doc_id] += tf

        if len(summed_tf) <= max_candidates:
            return list(summed_tf)

        ranked = sorted(summed_tf.items(), key=lambda item: (-item[1], item[0]))
        return [doc_id for doc_id, _ in ranked[:max_candidates]]

    def bm25_score(self, terms: Iterable[str], doc_id: str) -> float:
        doc_len = self._doc_lengths.get(doc_id, 0)
        if doc_len == 0:
            return 0.0

        total_docs = len(self._doc_lengths)
        score = 0.0
        for term in set(terms):
            postings = self._inverted_index.get(term)
            if not postings:
                continue
            tf = postings.get(doc_id, 0)
            if tf == 0:
                continue

            df = len(postings)
            idf = math.log((total_docs - df + 0.5) / (df + 0.5) + 1.0)
            denom = tf + self.k1 * (1.0 - self.b + self.b * doc_len / self._avg_doc_len)
            score += idf * (tf * (self.k1 + 1.0)) / denom

        return score


__all__ = ["LexicalIndex", "SPLIT_PATTERN", "default_tokenizer"]
