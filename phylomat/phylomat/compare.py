"""Dissimilarity measures between two distance matrices."""

from __future__ import annotations

from typing import Callable, Dict, Tuple

import numpy as np

from .matrix import DistanceMatrix, common_names


def _aligned_pairs(a: DistanceMatrix, b: DistanceMatrix) -> Tuple[np.ndarray, np.ndarray]:
    names = common_names(a, b)
    return a.sample(names).lower_triangle(), b.sample(names).lower_triangle()


def p1_norm(a: DistanceMatrix, b: DistanceMatrix) -> float:
    """Sum of absolute differences over the common pairs."""
    x, y = _aligned_pairs(a, b)
    return float(np.sum(np.abs(x - y)))


def p2_norm(a: DistanceMatrix, b: DistanceMatrix) -> float:
    """Root mean squared difference over the common pairs."""
    x, y = _aligned_pairs(a, b)
    if len(x) == 0:
        raise ValueError("matrices share fewer than two names")
    return float(np.sqrt(np.sum((x - y) ** 2) / len(x)))


def rel(a: DistanceMatrix, b: DistanceMatrix) -> float:
    """Average relative dissimilarity ``|2(x - y) / (x + y)|``."""
    x, y = _aligned_pairs(a, b)
    if len(x) == 0:
        raise ValueError("matrices share fewer than two names")
    return float(np.sum(np.abs(2.0 * (x - y) / (x + y))) / len(x))


def delta2(a: DistanceMatrix, b: DistanceMatrix) -> float:
    """Undirected Fitch-Margoliash distance."""
    x, y = _aligned_pairs(a, b)
    return float(np.sum(4.0 * (x - y) ** 2 / (x + y) ** 2))


MEASURES: Dict[str, Callable[[DistanceMatrix, DistanceMatrix], float]] = {
    "p1": p1_norm,
    "p2": p2_norm,
    "rel": rel,
    "delta2": delta2,
}


def diff(a: DistanceMatrix, b: DistanceMatrix) -> DistanceMatrix:
    """Cell-wise ``a - b`` over the common names."""
    names = common_names(a, b)
    sa = a.sample(names)
    sb = b.sample(names)
    return DistanceMatrix(names, np.asarray(sa.values) - np.asarray(sb.values))
