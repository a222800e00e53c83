"""HTTP clients used by the embedding layer."""

from .base import (
    BaseHttpClient,
    ClientError,
    NotFoundError,
    RateLimitedError,
    RequestRejectedError,
    UpstreamError,
)
from .ollama import OllamaClient

__all__ = [
    "BaseHttpClient",
    "ClientError",
    "NotFoundError",
    "OllamaClient",
    "RateLimitedError",
    "RequestRejectedError",
    "UpstreamError",
]
