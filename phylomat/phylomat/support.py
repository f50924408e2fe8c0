"""Quartet-based support values for the internal edges of an NJ tree."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .checks import DEFAULT_PRECISION
from .matrix import DistanceMatrix
from .trees import Handle, Root, Tree

logger = logging.getLogger(__name__)

Quartet = Tuple[int, int, int, int]


class QuartetColor(IntEnum):
    D = 0
    A = 1
    B = 2
    C = 3


@dataclass(frozen=True)
class SupportConfig:
    """How support values are estimated.

    ``sample_size=None`` enumerates all quartets of an edge; otherwise that
    many distinct quartets are drawn per edge. ``tolerance`` is the relative
    slack under which an alternative pairing still counts as a tie.
    """

    sample_size: Optional[int] = None
    seed: Optional[int] = None
    tolerance: float = DEFAULT_PRECISION
    workers: int = 1

    def __post_init__(self) -> None:
        if self.sample_size is not None and self.sample_size <= 0:
            raise ValueError("sample_size must be > 0")
        if self.tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")

    @property
    def sampled(self) -> bool:
        return self.sample_size is not None


@dataclass(frozen=True)
class EdgeColoring:
    """Leaf coloring for the branch ``node -> side`` (side: left/right/extra)."""

    node: Handle
    side: str
    colors: np.ndarray


def colorize(tree: Tree, handle: Handle, colors: np.ndarray, color: QuartetColor) -> None:
    for index in tree.iter_leaf_indices(handle):
        colors[index] = color


def _coloring(tree: Tree, a: Handle, b: Handle, c: Handle) -> np.ndarray:
    colors = np.full(tree.n_leaves, QuartetColor.D, dtype=np.int8)
    colorize(tree, a, colors, QuartetColor.A)
    colorize(tree, b, colors, QuartetColor.B)
    colorize(tree, c, colors, QuartetColor.C)
    return colors


def edge_colorings(tree: Tree) -> List[EdgeColoring]:
    """Colorings of every branch whose lower end is an internal node.

    For the branch from ``node`` to its child X, X's two subtrees become A and
    B, the sibling branch of X becomes C and the rest of the tree D::

        A -left--             -right- C
                 \\           /
                  --left-- node
                 /           \\
        B -right-             -extra/parent- D
    """
    out: List[EdgeColoring] = []
    for handle in tree.internal_nodes():
        node = tree.node(handle)
        left = tree.node(node.left)
        right = tree.node(node.right)
        if not left.is_leaf():
            out.append(EdgeColoring(handle, "left", _coloring(tree, left.left, left.right, node.right)))
        if not right.is_leaf():
            out.append(EdgeColoring(handle, "right", _coloring(tree, right.left, right.right, node.left)))
        if isinstance(node, Root):
            extra = tree.node(node.extra)
            if not extra.is_leaf():
                out.append(EdgeColoring(handle, "extra", _coloring(tree, extra.left, extra.right, node.left)))
    return out


def _class_indices(colors: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    return (
        np.flatnonzero(colors == QuartetColor.A),
        np.flatnonzero(colors == QuartetColor.B),
        np.flatnonzero(colors == QuartetColor.C),
        np.flatnonzero(colors == QuartetColor.D),
    )


def _contradicted(paired: np.ndarray, alt1: np.ndarray, alt2: np.ndarray, tolerance: float) -> np.ndarray:
    threshold = paired - tolerance * np.abs(paired)
    return (alt1 < threshold) | (alt2 < threshold)


def quartet_supports(
    distances: np.ndarray,
    a: int,
    b: int,
    c: int,
    d: int,
    tolerance: float = 0.0,
) -> bool:
    """Four-point test: does the quartet favor the pairing ab|cd?"""
    m = distances
    paired = np.array(m[a, b] + m[c, d])
    hit = _contradicted(paired, np.array(m[a, c] + m[b, d]), np.array(m[a, d] + m[b, c]), tolerance)
    return not bool(hit)


def support_exact(distances: np.ndarray, colors: np.ndarray, tolerance: float = 0.0) -> Optional[float]:
    """Fraction of all A x B x C x D quartets that support the edge."""
    ia, ib, ic, id_ = _class_indices(colors)
    total = len(ia) * len(ib) * len(ic) * len(id_)
    if total == 0:
        return None
    cd = distances[np.ix_(ic, id_)]
    bd = distances[np.ix_(ib, id_)]
    bc = distances[np.ix_(ib, ic)]
    rejected = 0
    # One A leaf at a time keeps memory at |B||C||D|.
    for a in ia:
        paired = distances[a, ib][:, None, None] + cd[None, :, :]
        alt1 = distances[a, ic][None, :, None] + bd[:, None, :]
        alt2 = distances[a, id_][None, None, :] + bc[:, :, None]
        rejected += int(np.count_nonzero(_contradicted(paired, alt1, alt2, tolerance)))
    return 1.0 - rejected / total


def sample_quartets(colors: np.ndarray, sample_size: int, rng: np.random.Generator) -> List[Quartet]:
    """Draw ``sample_size`` distinct quartets uniformly, one index per class."""
    classes = _class_indices(colors)
    sizes = [len(x) for x in classes]
    if min(sizes) == 0:
        return []
    if int(np.prod(sizes, dtype=object)) < sample_size:
        raise ValueError("fewer quartets than requested sample size")
    seen: set[Quartet] = set()
    while len(seen) < sample_size:
        need = sample_size - len(seen)
        draws = [cls[rng.integers(0, len(cls), size=need)] for cls in classes]
        for q in zip(*draws):
            seen.add((int(q[0]), int(q[1]), int(q[2]), int(q[3])))
            if len(seen) == sample_size:
                break
    return sorted(seen)


def support_sampled(
    distances: np.ndarray,
    colors: np.ndarray,
    sample_size: int,
    rng: np.random.Generator,
    tolerance: float = 0.0,
) -> Optional[float]:
    """Support from a random sample; exact when the edge has too few quartets."""
    sizes = [int(np.count_nonzero(colors == c)) for c in QuartetColor]
    if int(np.prod(sizes, dtype=object)) < sample_size:
        return support_exact(distances, colors, tolerance)
    quartets = sample_quartets(colors, sample_size, rng)
    if not quartets:
        return None
    q = np.array(quartets, dtype=int)
    a, b, c, d = q[:, 0], q[:, 1], q[:, 2], q[:, 3]
    paired = distances[a, b] + distances[c, d]
    alt1 = distances[a, c] + distances[b, d]
    alt2 = distances[a, d] + distances[b, c]
    rejected = int(np.count_nonzero(_contradicted(paired, alt1, alt2, tolerance)))
    return 1.0 - rejected / len(quartets)


def _edge_support(
    distances: np.ndarray,
    edge: EdgeColoring,
    config: SupportConfig,
    seed: np.random.SeedSequence,
) -> Optional[float]:
    if config.sample_size is None:
        return support_exact(distances, edge.colors, config.tolerance)
    rng = np.random.default_rng(seed)
    return support_sampled(distances, edge.colors, config.sample_size, rng, config.tolerance)


def _edge_seeds(config: SupportConfig, n_edges: int) -> Sequence[np.random.SeedSequence]:
    # A fresh SeedSequence pulls OS entropy when no seed is configured.
    return np.random.SeedSequence(config.seed).spawn(n_edges)


def annotate_support(
    tree: Tree,
    matrix: DistanceMatrix,
    config: SupportConfig | None = None,
) -> Tree:
    """Set the support field of every evaluable internal edge in place."""
    config = config if config is not None else SupportConfig()
    distances = np.asarray(matrix.values, dtype=float)
    edges = edge_colorings(tree)
    seeds = _edge_seeds(config, len(edges))

    if config.workers > 1 and len(edges) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as ex:
            results = list(ex.map(lambda e, s: _edge_support(distances, e, config, s), edges, seeds))
    else:
        results = [_edge_support(distances, edge, config, seed) for edge, seed in zip(edges, seeds)]

    skipped = 0
    for edge, value in zip(edges, results):
        if value is None:
            skipped += 1
            continue
        setattr(tree.node(edge.node), f"{edge.side}_support", value)
    logger.debug(
        "annotated %d edges (%s mode), skipped %d",
        len(edges) - skipped,
        "sampled" if config.sampled else "exact",
        skipped,
    )
    return tree
