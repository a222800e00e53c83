"""Client for the embedding endpoints of an Ollama server."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests

from pom_retrieval.exceptions import EmbeddingError

from .base import BaseHttpClient, NotFoundError

logger = logging.getLogger(__name__)


class OllamaClient(BaseHttpClient):
    """Request embeddings for single texts from Ollama.

    The client targets ``/api/embed`` and falls back to the older
    ``/api/embeddings`` endpoint when the server does not know the new one.
    A 404 naming the model means it has not been pulled and is reported as
    :class:`EmbeddingError` instead.
    """

    BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        model: str = "bge-large",
        *,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: float = 1200.0,
    ) -> None:
        super().__init__(session=session, base_url=base_url, timeout=timeout)
        self.model = model

    def embed(self, text: str) -> List[float]:
        try:
            payload = self._post_json("/api/embed", {"model": self.model, "input": text})
        except NotFoundError as exc:
            self._raise_if_model_missing(exc)
            logger.debug("Falling back to legacy /api/embeddings endpoint")
            try:
                payload = self._post_json("/api/embeddings", {"model": self.model, "prompt": text})
            except NotFoundError as legacy_exc:
                self._raise_if_model_missing(legacy_exc)
                raise
        return self._parse_vector(payload)

    def _raise_if_model_missing(self, exc: NotFoundError) -> None:
        if exc.detail and "model" in exc.detail.lower():
            raise EmbeddingError(
                f"Embedding model '{self.model}' is not available: {exc.detail}"
            ) from exc

    def _parse_vector(self, payload: Any) -> List[float]:
        vector: Any = None
        if isinstance(payload, dict):
            embeddings = payload.get("embeddings")
            if isinstance(embeddings, list) and embeddings:
                vector = embeddings[0]
            elif "embedding" in payload:
                vector = payload["embedding"]

        if not isinstance(vector, list) or not vector:
            raise EmbeddingError(f"Ollama returned no embedding for model '{self.model}'")

        try:
            return [float(value) for value in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError(f"Ollama returned a malformed embedding: {exc}") from exc


__all__ = ["OllamaClient"]
