"""Embedding vector encoding and dimensionality checks."""

from __future__ import annotations

import math
from collections.abc import Sequence

import sqlite_vec

from docchat.errors import VectorStoreError


def check_dimensions(vector: Sequence[float], dimensions: int) -> None:
    """Raise VectorStoreError unless *vector* has exactly *dimensions* finite values."""
    if len(vector) != dimensions:
        raise VectorStoreError(
            f"Embedding has {len(vector)} dimensions, store expects {dimensions}. "
            "Re-ingest with the configured embedding model or fix embedding.dimensions."
        )
    if not all(math.isfinite(v) for v in vector):
        raise VectorStoreError("Embedding contains NaN or infinite values.")


def serialize_vector(vector: Sequence[float], dimensions: int) -> bytes:
    """Validate *vector* and pack it as the float32 blob sqlite-vec reads."""
    check_dimensions(vector, dimensions)
    return sqlite_vec.serialize_float32([float(v) for v in vector])


def distance_to_similarity(distance: float | None) -> float:
    """Convert a cosine distance from sqlite-vec into a similarity score.

    Raises:
        VectorStoreError: If the store produced no usable distance.
    """
    if distance is None or math.isnan(distance):
        raise VectorStoreError("Vector store returned no similarity score for a match.")
    return 1.0 - float(distance)
