from __future__ import annotations

from typing import Sequence, Union

import numpy as np

VectorLike = Union[Sequence[float], np.ndarray]


def as_vector(values: VectorLike) -> np.ndarray:
    """Return ``values`` as a one-dimensional float32 array."""

    vector = np.asarray(values, dtype="float32")
    if vector.ndim != 1:
        raise ValueError(f"Expected a one-dimensional vector, got shape {vector.shape}")
    return vector


def cosine_similarity(left: VectorLike, right: VectorLike) -> float:
    """Cosine similarity in [-1, 1]; zero when either vector has no magnitude."""

    a = as_vector(left)
    b = as_vector(right)
    if a.shape[0] != b.shape[0]:
        raise ValueError(
            f"Embedding dimension mismatch: expected {a.shape[0]}, got {b.shape[0]}"
        )

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


__all__ = ["VectorLike", "as_vector", "cosine_similarity"]
