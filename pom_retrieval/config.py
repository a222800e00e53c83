"""Application configuration for the page model retrieval engine."""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pom_retrieval.cache import EmbeddingCacheOptions
from pom_retrieval.exceptions import ConfigError
from pom_retrieval.hybrid.options import ENGLISH_STOPWORDS, SearchOptions


class RetrievalConfig(BaseSettings):  # type: ignore[misc]
    """Settings controlling model paths, the embedding cache and search weights."""

    models_dir: Path = Field(Path("Models"), description="Directory holding page object model JSON files")
    schema_file_suffix: str = Field(".schema.json", description="Suffix of files skipped as schemas")
    strict_model_loading: bool = Field(
        False, description="Raise on invalid model files instead of skipping them"
    )

    cache_enabled: bool = Field(True, description="Whether embeddings are cached on disk")
    cache_dir: Path = Field(Path("Cache/Embeddings"), description="Directory for embedding cache files")
    cache_expiration_hours: int = Field(24, ge=0, description="Age after which cache entries expire")
    cache_max_size_mb: int = Field(100, ge=1, description="Cache size budget in megabytes")

    ollama_base_url: AnyHttpUrl = Field(
        "http://localhost:11434", description="HTTP endpoint of the Ollama server"
    )
    embedding_model: str = Field("bge-large", description="Model used to generate embeddings")
    request_timeout_s: float = Field(
        1200.0, gt=0, description="Timeout (in seconds) for embedding requests"
    )

    embedding_weight: float = Field(0.6, ge=0)
    lexical_weight: float = Field(0.4, ge=0)
    min_embedding_threshold: float = Field(0.2)
    page_boost: float = Field(1.0, gt=0)
    element_boost: float = Field(1.05, gt=0)
    task_boost: float = Field(1.05, gt=0)
    step_boost: float = Field(1.0, gt=0)
    max_lexical_candidates: int = Field(500, ge=1)
    synonyms: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_prefix="POM_", env_file=".env", extra="ignore")

    def model_post_init(self, __context: Any) -> None:
        """Normalize paths to absolute locations."""

        self.models_dir = self.models_dir.expanduser().resolve()
        self.cache_dir = self.cache_dir.expanduser().resolve()

    def cache_options(self) -> EmbeddingCacheOptions:
        return EmbeddingCacheOptions(
            enabled=self.cache_enabled,
            cache_directory=self.cache_dir,
            expiration=timedelta(hours=self.cache_expiration_hours),
            max_size_bytes=self.cache_max_size_mb * 1024 * 1024,
        )

    def search_options(self) -> SearchOptions:
        if self.embedding_weight == 0 and self.lexical_weight == 0:
            raise ConfigError("embedding_weight and lexical_weight cannot both be zero")
        return SearchOptions(
            embedding_weight=self.embedding_weight,
            lexical_weight=self.lexical_weight,
            min_embedding_threshold=self.min_embedding_threshold,
            page_boost=self.page_boost,
            element_boost=self.element_boost,
            task_boost=self.task_boost,
            step_boost=self.step_boost,
            max_lexical_candidates=self.max_lexical_candidates,
            stopwords=ENGLISH_STOPWORDS,
            synonyms={key.lower(): list(values) for key, values in self.synonyms.items()},
        )
