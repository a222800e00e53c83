"""Hybrid lexical + semantic search over page object model utterances.

Example
-------
```python
engine = HybridSearchEngine(repository, CachedEmbedder(embedder, cache))
await engine.initialize()
response = await engine.search("log in", scope=SearchScope.TASKS)
```
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from pom_retrieval.exceptions import EmbeddingError, SearchCancelledError
from pom_retrieval.models import PageObjectModel
from pom_retrieval.repository import ModelRepository
from pom_retrieval.urls import is_url_match

from .bm25_index import LexicalIndex
from .embeddings import Embedder
from .models import (
    IndexedUtterance,
    IndexStatistics,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchScope,
    UtteranceType,
    utterance_id,
)
from .options import SearchOptions
from .similarity import as_vector, cosine_similarity

logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "Query cannot be empty"

# Candidates scored between cooperative yields to the event loop.
_YIELD_EVERY = 200


@dataclass
class _IndexState:
    lexical: LexicalIndex
    utterances: Dict[str, IndexedUtterance] = field(default_factory=dict)
    embeddings: Dict[str, np.ndarray] = field(default_factory=dict)
    dimension: Optional[int] = None

    def store(self, utterance: IndexedUtterance, vector: np.ndarray) -> None:
        if self.dimension is None:
            self.dimension = int(vector.shape[0])
        elif vector.shape[0] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {vector.shape[0]}"
            )
        self.embeddings[utterance.id] = vector
        self.utterances[utterance.id] = utterance
        self.lexical.add_document(utterance.id, utterance.text)


def iter_utterances(model: PageObjectModel) -> Iterator[IndexedUtterance]:
    """Yield the non-blank utterances of a model: page, elements, tasks, then steps."""

    def build(
        kind: UtteranceType,
        text: str,
        id_parts: Sequence[str],
        *,
        element_name: Optional[str] = None,
        task_name: Optional[str] = None,
        step_description: Optional[str] = None,
    ) -> IndexedUtterance:
        return IndexedUtterance(
            id=utterance_id(kind, model.name, *id_parts, text),
            type=kind,
            text=text,
            page_name=model.name,
            page_description=model.description,
            url=model.url,
            element_name=element_name,
            task_name=task_name,
            step_description=step_description,
        )

    for text in model.utterances:
        if text and text.strip():
            yield build(UtteranceType.PAGE, text, ())

    for element in model.elements:
        for text in element.utterances:
            if text and text.strip():
                yield build(UtteranceType.ELEMENT, text, (element.name,), element_name=element.name)

    for task in model.tasks:
        for text in task.utterances:
            if text and text.strip():
                yield build(UtteranceType.TASK, text, (task.name,), task_name=task.name)

    for task in model.tasks:
        for step in task.steps:
            for text in step.utterances:
                if text and text.strip():
                    yield build(
                        UtteranceType.STEP,
                        text,
                        (task.name, step.description),
                        task_name=task.name,
                        step_description=step.description,
                    )


class HybridSearchEngine:
    """Rank utterances by fusing BM25 with cosine similarity of embeddings.

    Every rebuild indexes into a fresh state which replaces the current one in
    a single step, so searches only ever see a complete index. Rebuilds are
    serialized by an :class:`asyncio.Lock`.
    """

    def __init__(
        self,
        repository: ModelRepository,
        embedder: Embedder,
        *,
        options: Optional[SearchOptions] = None,
    ) -> None:
        self.repository = repository
        self.embedder = embedder
        self.options = options or SearchOptions()
        self._type_boosts: Dict[UtteranceType, float] = {
            UtteranceType.PAGE: self.options.page_boost,
            UtteranceType.ELEMENT: self.options.element_boost,
            UtteranceType.TASK: self.options.task_boost,
            UtteranceType.STEP: self.options.step_boost,
        }
        self._state = self._new_state()
        self._rebuild_lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def lexical_index(self) -> LexicalIndex:
        return self._state.lexical

    async def initialize(self) -> IndexStatistics:
        """Load every model from the repository and rebuild both indexes."""

        try:
            logger.info("Initializing hybrid search engine")
            models = await self.repository.get_all_models()
            stats = await self.index_models(models)
            logger.info(
                "Indexed %d utterances from %d models", stats.total_utterances, len(models)
            )
            return stats
        except Exception:
            logger.exception("Error initializing hybrid search engine")
            raise

    async def index_models(self, models: Iterable[PageObjectModel]) -> IndexStatistics:
        async with self._rebuild_lock:
            state = self._new_state()
            for model in models:
                for utterance in iter_utterances(model):
                    if utterance.id in state.utterances:
                        logger.debug("Skipping duplicate utterance %s", utterance.id)
                        continue
                    vector = as_vector(await self.embedder.embed(utterance.text))
                    state.store(utterance, vector)
            state.lexical.recompute_average_length()

            self._state = state
            self._initialized = True
        return self.get_index_statistics()

    async def search(
        self,
        query: Union[str, SearchRequest],
        *,
        max_results: int = 10,
        min_similarity_threshold: float = 0.0,
        scope: SearchScope = SearchScope.ALL,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SearchResponse:
        """Search indexed utterances; failures are reported on the response, never raised."""

        if isinstance(query, SearchRequest):
            request = query
        else:
            request = SearchRequest(
                query=query,
                max_results=max_results,
                min_similarity_threshold=min_similarity_threshold,
                scope=scope,
                timeout=timeout,
            )

        started = time.perf_counter()
        if not request.query or not request.query.strip():
            return self._error_response(request, started, EMPTY_QUERY_MESSAGE)

        try:
            logger.debug("Performing hybrid search for query: %s", request.query)
            if request.timeout is not None:
                results, total = await asyncio.wait_for(
                    self._execute(request, cancel_event), timeout=request.timeout
                )
            else:
                results, total = await self._execute(request, cancel_event)
        except asyncio.TimeoutError as exc:
            if request.timeout is None:
                logger.exception("Error performing hybrid search for query: %s", request.query)
                return self._error_response(request, started, str(exc) or exc.__class__.__name__)
            logger.warning("Search timed out after %ss for query: %s", request.timeout, request.query)
            return self._error_response(
                request, started, f"Search cancelled: timed out after {request.timeout}s"
            )
        except SearchCancelledError as exc:
            logger.info("Search cancelled for query: %s", request.query)
            return self._error_response(request, started, f"Search cancelled: {exc}")
        except Exception as exc:
            logger.exception("Error performing hybrid search for query: %s", request.query)
            return self._error_response(request, started, str(exc) or exc.__class__.__name__)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.debug("Search completed in %.1fms, found %d results", duration_ms, len(results))
        return SearchResponse(
            request=request,
            results=results,
            total_matches=total,
            duration_ms=duration_ms,
        )

    def get_index_statistics(self) -> IndexStatistics:
        stats = IndexStatistics()
        for utterance in self._state.utterances.values():
            stats.total_utterances += 1
            if utterance.type is UtteranceType.PAGE:
                stats.page_utterances += 1
            elif utterance.type is UtteranceType.ELEMENT:
                stats.element_utterances += 1
            elif utterance.type is UtteranceType.TASK:
                stats.task_utterances += 1
            elif utterance.type is UtteranceType.STEP:
                stats.step_utterances += 1
        return stats

    async def find_model_by_url(self, url: str) -> Optional[PageObjectModel]:
        if not url:
            logger.warning("URL is null or empty, cannot find matching model")
            return None

        try:
            models = await self.repository.get_all_models()
        except Exception:
            logger.exception("Error finding matching model for URL '%s'", url)
            return None

        for model in models:
            if is_url_match(url, model.url):
                logger.info("Found matching page object model '%s' for URL '%s'", model.name, url)
                return model

        logger.debug("No matching page object model found for URL '%s'", url)
        return None

    def expand_query_terms(self, tokens: Iterable[str]) -> List[str]:
        expanded: List[str] = []
        for token in tokens:
            expanded.append(token)
            for synonym in self.options.synonyms.get(token, ()):
                if synonym and synonym.strip():
                    expanded.append(synonym.lower())
        return expanded

    async def _execute(
        self, request: SearchRequest, cancel_event: Optional[asyncio.Event]
    ) -> Tuple[List[SearchResult], int]:
        state = self._state
        if not state.embeddings:
            return [], 0

        query_vector = as_vector(await self._embed_query(request.query))
        terms = self.expand_query_terms(state.lexical.tokenizer(request.query))
        _check_cancelled(cancel_event)

        candidates = state.lexical.candidates(
            terms, max_candidates=self.options.max_lexical_candidates
        )
        if not candidates:
            candidates = list(state.embeddings)

        scored: List[Tuple[IndexedUtterance, float, float]] = []
        for position, doc_id in enumerate(candidates, start=1):
            _check_cancelled(cancel_event)
            if position % _YIELD_EVERY == 0:
                await asyncio.sleep(0)

            utterance = state.utterances.get(doc_id)
            if utterance is None or not request.scope.matches(utterance.type):
                continue

            cosine = cosine_similarity(query_vector, state.embeddings[doc_id])
            bm25 = state.lexical.bm25_score(terms, doc_id)

            # Without any lexical overlap a document must clear the semantic threshold.
            if bm25 == 0 and cosine < request.min_similarity_threshold:
                continue

            fused = (
                cosine * self.options.embedding_weight + bm25 * self.options.lexical_weight
            ) * self._type_boosts.get(utterance.type, 1.0)
            scored.append((utterance, fused, cosine))

        _check_cancelled(cancel_event)
        scored.sort(key=lambda item: item[1], reverse=True)
        top = scored[: max(request.max_results, 0)]
        return [SearchResult.from_utterance(u, cosine) for u, _, cosine in top], len(scored)

    async def _embed_query(self, query: str) -> Sequence[float]:
        # Only the timeout raised by wait_for may surface as a TimeoutError.
        try:
            return await self.embedder.embed(query)
        except (TimeoutError, asyncio.TimeoutError) as exc:
            raise EmbeddingError(f"Embedding provider timed out: {exc}") from exc

    def _new_state(self) -> _IndexState:
        return _IndexState(lexical=LexicalIndex(stopwords=self.options.stopwords))

    @staticmethod
    def _error_response(request: SearchRequest, started: float, message: str) -> SearchResponse:
        return SearchResponse(
            request=request,
            results=[],
            total_matches=0,
            duration_ms=(time.perf_counter() - started) * 1000,
            error_message=message,
        )


def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SearchCancelledError("cancellation requested")


__all__ = ["EMPTY_QUERY_MESSAGE", "HybridSearchEngine", "iter_utterances"]
