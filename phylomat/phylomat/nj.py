"""Neighbor-joining tree construction."""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np

from .exceptions import TooFewTaxaError
from .matrix import DistanceMatrix
from .trees import Handle, Node, Root, Tree, new_arena

logger = logging.getLogger(__name__)

MIN_TAXA = 4


def divergences(work: np.ndarray, k: int) -> np.ndarray:
    """Net divergence ``r[i] = sum_j M[i][j] / (k - 2)`` over the active window."""
    # Sequential left-to-right row sums: tie-breaks in closest_pair depend on
    # the exact bits.
    return np.cumsum(work[:k, :k], axis=1)[:, -1] / (k - 2)


def closest_pair(work: np.ndarray, r: np.ndarray, k: int) -> Tuple[int, int]:
    """Pair ``i < j`` minimizing ``M[i][j] - r[i] - r[j]``.

    Ties go to the first pair in row-major scan order.
    """
    q = work[:k, :k] - r[:k, None] - r[None, :k]
    q[np.tril_indices(k)] = np.inf
    flat = int(np.argmin(q))
    return flat // k, flat % k


def _join(work: np.ndarray, r: np.ndarray, i: int, j: int, k: int) -> Tuple[float, float]:
    """Merge slots ``i < j`` in place; the node from slot ``k - 1`` moves to ``j``.

    The buffer keeps its capacity; only the active window ``[:k-1, :k-1]`` is
    meaningful afterwards. Slot ``i`` now holds the new node and slot ``j``
    whatever was last, so identity at a slot changes while memory does not.
    """
    d_ij = work[i, j]
    left = (d_ij + r[i] - r[j]) / 2.0
    right = (d_ij - r[i] + r[j]) / 2.0

    row = (work[i, :k] + work[j, :k] - d_ij) / 2.0
    row[i] = 0.0
    row[j] = row[k - 1]

    work[i, :k] = row
    work[j, :k] = work[k - 1, :k]
    work[i, i] = work[j, j] = 0.0
    work[:k, i] = work[i, :k]
    work[:k, j] = work[j, :k]
    return float(left), float(right)


def neighbor_joining(matrix: DistanceMatrix) -> Tree:
    """Build an unrooted tree (as a ternary root) from a distance matrix."""
    n = matrix.size
    if n < MIN_TAXA:
        raise TooFewTaxaError(n)

    nodes: List[Node] = new_arena(matrix.names)
    active: List[Handle] = list(range(n))
    work = np.array(matrix.values, dtype=float)

    k = n
    while k > 3:
        r = divergences(work, k)
        i, j = closest_pair(work, r, k)
        left, right = _join(work, r, i, j, k)
        nodes.append(Node(left=active[i], right=active[j], left_length=left, right_length=right))
        logger.debug("joined slots %d and %d (k=%d): lengths %.6g, %.6g", i, j, k, left, right)
        active[i] = len(nodes) - 1
        active[j] = active[k - 1]
        k -= 1

    m01, m02, m12 = work[0, 1], work[0, 2], work[1, 2]
    nodes.append(
        Root(
            left=active[0],
            right=active[1],
            extra=active[2],
            left_length=float((m01 + m02 - m12) / 2.0),
            right_length=float((m01 + m12 - m02) / 2.0),
            extra_length=float((m02 + m12 - m01) / 2.0),
        )
    )
    return Tree(names=matrix.names, nodes=nodes, root=len(nodes) - 1)
