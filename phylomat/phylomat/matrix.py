"""Distance matrix model, name-based projection and name filtering."""

from __future__ import annotations

import re
from typing import Iterable, Sequence, Union

import numpy as np

Name = str
Key = Union[int, str]


class DistanceMatrix:
    """Square matrix of pairwise distances keyed by an ordered name list.

    Values are stored row-major in an ``n x n`` float array. Symmetry and a
    zero main diagonal are expected but not enforced here; see
    :func:`phylomat.checks.fix` for the repair step. Instances are treated as
    immutable: derived matrices always own fresh storage.
    """

    __slots__ = ("_names", "_values", "_coverage", "_index")

    def __init__(
        self,
        names: Sequence[Name],
        values: Sequence[float] | np.ndarray,
        coverage: Sequence[float] | np.ndarray | None = None,
    ) -> None:
        names_t = tuple(str(x) for x in names)
        n = len(names_t)
        arr = np.array(values, dtype=float)
        if arr.size != n * n:
            raise ValueError(f"expected {n * n} values for {n} names, got {arr.size}")
        arr = arr.reshape(n, n)
        index = {name: i for i, name in enumerate(names_t)}
        if len(index) != n:
            dupes = sorted({x for x in names_t if names_t.count(x) > 1})
            raise ValueError(f"duplicate names in matrix: {dupes}")
        cov = None
        if coverage is not None:
            cov = np.array(coverage, dtype=float)
            if cov.size != n * n:
                raise ValueError("coverage must have the same shape as values")
            cov = cov.reshape(n, n)
            cov.flags.writeable = False
        arr.flags.writeable = False
        self._names = names_t
        self._values = arr
        self._coverage = cov
        self._index = index

    @property
    def size(self) -> int:
        return len(self._names)

    def __len__(self) -> int:
        return len(self._names)

    @property
    def names(self) -> tuple[Name, ...]:
        return self._names

    @property
    def values(self) -> np.ndarray:
        """Read-only ``n x n`` view of the distances."""
        return self._values

    @property
    def coverage(self) -> np.ndarray | None:
        return self._coverage

    @property
    def has_coverage(self) -> bool:
        return self._coverage is not None

    def index_of(self, name: Name) -> int:
        # Absent names are a caller bug: intersect name sets first.
        return self._index[name]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def entry(self, i: Key, j: Key) -> float:
        """Distance between two rows, addressed by index or by name."""
        ii = self._index[i] if isinstance(i, str) else i
        jj = self._index[j] if isinstance(j, str) else j
        return float(self._values[ii, jj])

    def row(self, i: Key) -> np.ndarray:
        ii = self._index[i] if isinstance(i, str) else i
        return self._values[ii]

    def sample(self, names: Iterable[Name]) -> "DistanceMatrix":
        """Submatrix over ``names`` in the given order, copied by name."""
        new_names = [str(x) for x in names]
        idx = np.array([self._index[x] for x in new_names], dtype=int)
        values = self._values[np.ix_(idx, idx)]
        coverage = None
        if self._coverage is not None:
            coverage = self._coverage[np.ix_(idx, idx)]
        return DistanceMatrix(new_names, values, coverage)

    project = sample

    def sort_by_name(self) -> "DistanceMatrix":
        return self.sample(sorted(self._names))

    def lower_triangle(self) -> np.ndarray:
        """Strict lower triangle, row-major: (1,0), (2,0), (2,1), ..."""
        rows, cols = np.tril_indices(self.size, k=-1)
        return self._values[rows, cols].copy()

    def with_values(self, values: np.ndarray) -> "DistanceMatrix":
        """Same names and coverage, new distances."""
        return DistanceMatrix(self._names, values, self._coverage)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DistanceMatrix):
            return NotImplemented
        return self._names == other._names and np.array_equal(self._values, other._values)

    def __hash__(self) -> int:
        return hash((self._names, self._values.tobytes()))

    def __repr__(self) -> str:
        return f"DistanceMatrix(size={self.size}, names={list(self._names)!r})"


def common_names(
    a: DistanceMatrix | Sequence[Name],
    b: DistanceMatrix | Sequence[Name],
) -> list[Name]:
    """Sorted intersection of two name lists."""
    names_a = a.names if isinstance(a, DistanceMatrix) else a
    names_b = b.names if isinstance(b, DistanceMatrix) else b
    return sorted(set(names_a) & set(names_b))


def grep(matrix: DistanceMatrix, pattern: str | re.Pattern, invert: bool = False) -> DistanceMatrix:
    """Submatrix of names matching ``pattern`` (or not matching, if inverted)."""
    rx = re.compile(pattern) if isinstance(pattern, str) else pattern
    keep = [name for name in matrix.names if (rx.search(name) is not None) != invert]
    return matrix.sample(keep)
