"""Distance matrix repair and validation."""

from __future__ import annotations

import logging

import numpy as np

from .exceptions import MatrixValidationError
from .matrix import DistanceMatrix

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 0.05


def close_enough(a: float, b: float, precision: float = DEFAULT_PRECISION) -> bool:
    """True iff ``b`` lies within ``precision`` (relative) of ``a``."""
    return a * (1.0 - precision) <= b <= a * (1.0 + precision)


def fix(matrix: DistanceMatrix, precision: float = DEFAULT_PRECISION) -> DistanceMatrix:
    """Return a copy with negative cells, diagonal and asymmetries repaired."""
    values = np.array(matrix.values, dtype=float)
    n = matrix.size

    for i, j in zip(*np.nonzero(values < 0)):
        logger.warning("Fixed entry (%d,%d); was negative: %f, now 0.", i, j, values[i, j])
        values[i, j] = 0.0

    for i in range(n):
        if values[i, i] != 0:
            logger.warning("Fixed entry (%d,%d); was %f, now is 0.", i, i, values[i, i])
            values[i, i] = 0.0

    for i in range(n):
        for j in range(i):
            if not close_enough(values[i, j], values[j, i], precision):
                logger.warning(
                    "Fixed asymmetric cells (%d,%d) and (%d,%d); entries are now averaged.",
                    i, j, j, i,
                )
                avg = (values[i, j] + values[j, i]) / 2.0
                values[i, j] = values[j, i] = avg

    return matrix.with_values(values)


def validate(
    matrix: DistanceMatrix,
    truncate_names: bool = False,
    precision: float = DEFAULT_PRECISION,
) -> DistanceMatrix:
    """Check that ``matrix`` is a proper distance matrix.

    Raises MatrixValidationError on duplicate names, zero or NaN entries off
    the main diagonal and violations of the triangle inequality.
    """
    keys = sorted(name[:10] if truncate_names else name for name in matrix.names)
    for a, b in zip(keys, keys[1:]):
        if a == b:
            if truncate_names:
                raise MatrixValidationError(f"The truncated name {a} appears twice.")
            raise MatrixValidationError(f"The name {a} appears twice.")

    m = matrix.values
    n = matrix.size
    for i in range(n):
        for j in range(i):
            if close_enough(m[i, j], 0.0, precision):
                raise MatrixValidationError(f"Zero entry beyond the main diagonal ({i},{j}).")
            if np.isnan(m[i, j]):
                raise MatrixValidationError(f"Not a Number ({i},{j})")

    for i in range(n):
        for j in range(i):
            for k in range(j):
                detour = m[i, k] + m[j, k]
                if m[i, j] > detour and not close_enough(m[i, j], detour, precision):
                    raise MatrixValidationError(
                        f"Violation of triangle inequality for ({i},{j}) and ({i},{k})+({k},{j})"
                    )
    return matrix
