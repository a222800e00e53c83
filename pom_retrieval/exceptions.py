"""Custom exception hierarchy for the page model retrieval engine."""


class RetrievalError(Exception):
    """Base exception for retrieval engine errors."""


class ConfigError(RetrievalError):
    """Raised when configuration is invalid or incomplete."""


class ModelLoadError(RetrievalError):
    """Raised when a page object model file cannot be read or validated."""


class ModelNotFoundError(RetrievalError):
    """Raised when a requested page object model does not exist."""


class EmbeddingError(RetrievalError):
    """Raised when the embedding provider returns no usable vector."""


class SearchCancelledError(RetrievalError):
    """Raised when a search is cancelled or times out before completing."""
