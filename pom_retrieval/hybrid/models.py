from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

ID_DELIMITER = "|"


class UtteranceType(str, Enum):
    PAGE = "page"
    ELEMENT = "element"
    TASK = "task"
    STEP = "step"


class SearchScope(str, Enum):
    ALL = "all"
    PAGES = "pages"
    ELEMENTS = "elements"
    TASKS = "tasks"
    STEPS = "steps"

    def matches(self, utterance_type: UtteranceType) -> bool:
        if self is SearchScope.ALL:
            return True
        return _SCOPE_TYPES[self] is utterance_type


_SCOPE_TYPES = {
    SearchScope.PAGES: UtteranceType.PAGE,
    SearchScope.ELEMENTS: UtteranceType.ELEMENT,
    SearchScope.TASKS: UtteranceType.TASK,
    SearchScope.STEPS: UtteranceType.STEP,
}


def _escape_id_part(part: str) -> str:
    return part.replace("\\", "\\\\").replace(ID_DELIMITER, "\\" + ID_DELIMITER)


def utterance_id(utterance_type: UtteranceType, *parts: str) -> str:
    """Join the type, its owning identifiers and the utterance into a document id.

    Backslashes and delimiters inside parts are backslash-escaped, so distinct
    parts never produce the same id.
    """

    return ID_DELIMITER.join((utterance_type.value, *(_escape_id_part(part) for part in parts)))


@dataclass(frozen=True)
class IndexedUtterance:
    """One searchable utterance with denormalized page context."""

    id: str
    type: UtteranceType
    text: str
    page_name: str
    page_description: str
    url: str
    element_name: Optional[str] = None
    task_name: Optional[str] = None
    step_description: Optional[str] = None


@dataclass(frozen=True)
class SearchResultContext:
    page_name: str
    element_name: Optional[str] = None
    task_name: Optional[str] = None
    step_description: Optional[str] = None


@dataclass(frozen=True)
class SearchResult:
    """A ranked hit; ``similarity_score`` is the raw cosine similarity."""

    id: str
    type: UtteranceType
    name: str
    description: str
    url: str
    similarity_score: float
    matched_utterance: str
    context: SearchResultContext

    @classmethod
    def from_utterance(cls, utterance: IndexedUtterance, similarity: float) -> "SearchResult":
        return cls(
            id=utterance.id,
            type=utterance.type,
            name=utterance.page_name,
            description=utterance.page_description,
            url=utterance.url,
            similarity_score=similarity,
            matched_utterance=utterance.text,
            context=SearchResultContext(
                page_name=utterance.page_name,
                element_name=utterance.element_name,
                task_name=utterance.task_name,
                step_description=utterance.step_description,
            ),
        )


@dataclass(frozen=True)
class SearchRequest:
    query: str
    max_results: int = 10
    min_similarity_threshold: float = 0.0
    scope: SearchScope = SearchScope.ALL
    timeout: Optional[float] = None


@dataclass
class SearchResponse:
    request: SearchRequest
    results: List[SearchResult] = field(default_factory=list)
    total_matches: int = 0
    duration_ms: float = 0.0
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_message is None


@dataclass
class IndexStatistics:
    total_utterances: int = 0
    page_utterances: int = 0
    element_utterances: int = 0
    task_utterances: int = 0
    step_utterances: int = 0


__all__ = [
    "ID_DELIMITER",
    "IndexStatistics",
    "IndexedUtterance",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchResultContext",
    "SearchScope",
    "UtteranceType",
    "utterance_id",
]
