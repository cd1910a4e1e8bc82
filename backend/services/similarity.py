"""Vector helpers shared by the classifier and the vector index."""
import logging
from typing import Sequence, Union

import numpy as np

from services.errors import DimensionMismatchError

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]


def zero_vector(dimension: int) -> np.ndarray:
    return np.zeros(dimension, dtype=np.float64)


def normalize_dimensions(embedding: Vector, dimension: int) -> np.ndarray:
    """
    Fit an embedding to ``dimension`` by truncating or zero-padding.

    Providers occasionally return vectors of a different length than the
    configured model dimension; those are adjusted, never rejected.
    """
    vector = np.asarray(embedding, dtype=np.float64).ravel()

    if vector.shape[0] == dimension:
        return vector

    logger.debug(f"Normalizing embedding from {vector.shape[0]} to {dimension} dimensions")

    if vector.shape[0] > dimension:
        return vector[:dimension].copy()
    return np.concatenate([vector, np.zeros(dimension - vector.shape[0])])


def cosine_similarity(a: Vector, b: Vector) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()

    if va.shape != vb.shape:
        raise DimensionMismatchError(
            f"Vectors must have same length ({va.shape[0]} != {vb.shape[0]})"
        )

    # sqrt(|a|^2 * |b|^2) keeps cosine_similarity(v, v) exactly 1.0
    denominator = np.sqrt(np.dot(va, va) * np.dot(vb, vb))
    if denominator == 0:
        return 0.0

    similarity = float(np.dot(va, vb) / denominator)
    return max(-1.0, min(1.0, similarity))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``matrix``."""
    if matrix.shape[0] == 0:
        return np.zeros(0)

    denominators = np.sqrt(np.einsum("ij,ij->i", matrix, matrix) * np.dot(query, query))
    dots = matrix @ query
    safe = np.where(denominators > 0, denominators, 1.0)
    sims = np.where(denominators > 0, dots / safe, 0.0)
    return np.clip(sims, -1.0, 1.0)
