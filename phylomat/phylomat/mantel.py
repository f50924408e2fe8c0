"""Mantel permutation test between two distance matrices."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial.distance import squareform

from .matrix import DistanceMatrix, common_names

logger = logging.getLogger(__name__)

DEFAULT_TRIALS = 100_000

# Trials per independently seeded chunk. Fixed so that results for a seed do
# not depend on the number of workers.
CHUNK_TRIALS = 10_000


def _product(x: np.ndarray, y: np.ndarray) -> float:
    return float(np.dot(x, y))


def _rmsd(x: np.ndarray, y: np.ndarray) -> float:
    diff = x - y
    return float(np.sqrt(np.dot(diff, diff) / len(diff)))


STATISTICS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "product": _product,
    "rmsd": _rmsd,
}


@dataclass(frozen=True)
class MantelConfig:
    """Permutation test settings.

    ``statistic="product"`` sums the cross products over all pairs and counts
    null values at least as large as observed. ``"rmsd"`` is the root mean
    squared difference and counts null values at most as large.
    """

    trials: int = DEFAULT_TRIALS
    normalize: bool = False
    statistic: str = "product"
    seed: Optional[int] = None
    workers: int = 1

    def __post_init__(self) -> None:
        if self.trials < 1:
            raise ValueError("trials must be >= 1")
        if self.statistic not in STATISTICS:
            raise ValueError(f"statistic must be one of {sorted(STATISTICS)}")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")


@dataclass(frozen=True)
class MantelResult:
    statistic: float
    p_value: float
    n_names: int
    trials: int


def normalize(matrix: DistanceMatrix) -> DistanceMatrix:
    """Z-score every cell by the lower-triangle mean and sample deviation."""
    lower = matrix.lower_triangle()
    if len(lower) < 2:
        raise ValueError("normalization needs at least three names")
    avg = float(np.mean(lower))
    sd = float(np.std(lower, ddof=1))
    if sd == 0.0:
        raise ValueError("cannot normalize a matrix with constant distances")
    return matrix.with_values((matrix.values - avg) / sd)


def _pair_vector(values: np.ndarray) -> np.ndarray:
    # Condensed form: entries (i, j) with i < j in row-major order.
    return squareform(values, force="tovector", checks=False)


def _null_chunk(
    x: np.ndarray,
    other: np.ndarray,
    trials: int,
    stat: Callable[[np.ndarray, np.ndarray], float],
    seed: np.random.SeedSequence,
) -> np.ndarray:
    rng = np.random.default_rng(seed)
    n = other.shape[0]
    out = np.empty(trials, dtype=float)
    for t in range(trials):
        perm = rng.permutation(n)
        out[t] = stat(x, _pair_vector(other[np.ix_(perm, perm)]))
    return out


def _chunk_sizes(trials: int) -> List[int]:
    full, rest = divmod(trials, CHUNK_TRIALS)
    return [CHUNK_TRIALS] * full + ([rest] if rest else [])


def mantel_test(a: DistanceMatrix, b: DistanceMatrix, config: MantelConfig | None = None) -> MantelResult:
    """One-sided permutation test on the names ``a`` and ``b`` share."""
    config = config if config is not None else MantelConfig()
    names = common_names(a, b)
    if len(names) < 2:
        raise ValueError(f"mantel test needs at least two common names, got {len(names)}")
    if config.normalize and len(names) < 3:
        raise ValueError(f"normalized mantel test needs at least three common names, got {len(names)}")
    sa = a.sample(names)
    sb = b.sample(names)
    if config.normalize:
        sa = normalize(sa)
        sb = normalize(sb)

    stat = STATISTICS[config.statistic]
    x = _pair_vector(np.asarray(sa.values))
    other = np.asarray(sb.values)
    observed = stat(x, _pair_vector(other))
    logger.debug("mantel: %d common names, observed %s = %g", len(names), config.statistic, observed)

    sizes = _chunk_sizes(config.trials)
    seeds = np.random.SeedSequence(config.seed).spawn(len(sizes))
    if config.workers > 1 and len(sizes) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as ex:
            chunks = list(ex.map(lambda k, s: _null_chunk(x, other, k, stat, s), sizes, seeds))
    else:
        chunks = [_null_chunk(x, other, k, stat, s) for k, s in zip(sizes, seeds)]
    null = np.concatenate(chunks)

    if config.statistic == "rmsd":
        extreme = int(np.count_nonzero(null <= observed))
    else:
        extreme = int(np.count_nonzero(null >= observed))
    return MantelResult(
        statistic=observed,
        p_value=extreme / len(null),
        n_names=len(names),
        trials=len(null),
    )


def mantel(a: DistanceMatrix, b: DistanceMatrix, config: MantelConfig | None = None) -> float:
    return mantel_test(a, b, config).p_value


def mantel_matrix(matrices: Sequence[DistanceMatrix], config: MantelConfig | None = None) -> DistanceMatrix:
    """Pairwise p-values between all matrices, as a matrix named M1..Mk."""
    k = len(matrices)
    values = np.zeros((k, k), dtype=float)
    for i in range(k):
        for j in range(i + 1, k):
            values[i, j] = values[j, i] = mantel(matrices[i], matrices[j], config)
    return DistanceMatrix([f"M{i + 1}" for i in range(k)], values)
