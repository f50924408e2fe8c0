"""PHYLIP distance matrix reading and writing."""

from __future__ import annotations

import logging
import re
import sys
from typing import Iterator, List, Sequence

import numpy as np

from .exceptions import MatrixFormatError
from .matrix import DistanceMatrix

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "%9.3e"

_FORMAT_RE = re.compile(r"^%([#0 +\-]*)(\-?[1-9][0-9]*)?(\.[0-9]*)?([eE]|[lL]?[fF])$")


def _content_lines(text: str) -> Iterator[str]:
    for line in text.splitlines():
        if line.strip():
            yield line


def _parse_row(line: str, source: str, max_values: int) -> tuple[str, list[float]]:
    fields = line.split()
    name = fields[0]
    try:
        values = [float(x) for x in fields[1:]]
    except ValueError:
        raise MatrixFormatError(f"{source}: parse error") from None
    if len(values) > max_values:
        raise MatrixFormatError(
            f"{source}: row {name!r} has {len(values)} values, expected at most {max_values}"
        )
    return name, values


def _parse_one(lines: Iterator[str], header: str, source: str) -> DistanceMatrix:
    try:
        size = int(header.strip())
    except ValueError:
        raise MatrixFormatError(f"{source}: parse error") from None
    if size <= 0:
        raise MatrixFormatError(f"{source}: matrix of size {size}")

    values = np.zeros((size, size), dtype=float)
    names: list[str] = []

    def next_row(max_values: int) -> tuple[str, list[float]]:
        line = next(lines, None)
        if line is None:
            raise MatrixFormatError(f"{source}: expected {size} rows, got {len(names)}")
        return _parse_row(line, source, max_values)

    # The first row tells full format apart from lower triangle, with or
    # without the diagonal.
    name, first = next_row(size)
    lower_triangle = len(first) < size
    diagonal = lower_triangle and len(first) == 1
    names.append(name)
    values[0, : len(first)] = first

    for i in range(1, size):
        width = i + int(diagonal) if lower_triangle else size
        name, row = next_row(width)
        if len(row) != width:
            raise MatrixFormatError(
                f"{source}: row {name!r} has {len(row)} values, expected {width}"
            )
        names.append(name)
        values[i, :width] = row

    if lower_triangle:
        upper = np.triu_indices(size, k=1)
        values[upper] = values.T[upper]

    try:
        return DistanceMatrix(names, values)
    except ValueError as exc:
        raise MatrixFormatError(f"{source}: {exc}") from None


def parse_matrices(text: str, source: str = "-") -> List[DistanceMatrix]:
    """Parse every matrix in a PHYLIP text (full or lower-triangular rows)."""
    lines = _content_lines(text)
    matrices: List[DistanceMatrix] = []
    for header in lines:
        matrices.append(_parse_one(lines, header, source))
    return matrices


def parse_matrix(text: str, source: str = "-") -> DistanceMatrix:
    matrices = parse_matrices(text, source)
    if not matrices:
        raise MatrixFormatError(f"{source}: no matrix found")
    return matrices[0]


def read_matrices(paths: Sequence[str] | None = None) -> List[DistanceMatrix]:
    """Read all matrices from the given files; ``-`` or no paths means stdin."""
    paths = list(paths) if paths else ["-"]
    matrices: List[DistanceMatrix] = []
    for path in paths:
        if path == "-":
            if sys.stdin.isatty():
                logger.warning("Reading from stdin...")
            text = sys.stdin.read()
        else:
            with open(path, "r", encoding="utf-8") as handle:
                text = handle.read()
        parsed = parse_matrices(text, path)
        logger.debug("read %d matrices from %s", len(parsed), path)
        matrices.extend(parsed)
    return matrices


def check_format_specifier(format_specifier: str) -> str:
    if not _FORMAT_RE.match(format_specifier):
        raise ValueError(f"invalid format specifier: {format_specifier}")
    # Python's %-formatting has no length modifier.
    return re.sub(r"[lL](?=[fF]$)", "", format_specifier)


def format_matrix(
    matrix: DistanceMatrix,
    separator: str = " ",
    format_specifier: str = DEFAULT_FORMAT,
    truncate_names: bool = False,
) -> str:
    """Render a matrix in full PHYLIP layout."""
    fmt = check_format_specifier(format_specifier)
    name_format = "%-10.10s" if truncate_names else "%-10s"
    out = [f"{matrix.size}\n"]
    for i, name in enumerate(matrix.names):
        cells = "".join(separator + fmt % value for value in matrix.row(i))
        out.append(name_format % name + cells + "\n")
    return "".join(out)
