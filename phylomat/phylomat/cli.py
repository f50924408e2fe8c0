"""phylomat command-line interface."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from . import __version__
from .checks import DEFAULT_PRECISION, fix, validate
from .compare import MEASURES, diff
from .exceptions import TooFewTaxaError
from .mantel import DEFAULT_TRIALS, MantelConfig, mantel, mantel_matrix
from .matrix import grep
from .nj import neighbor_joining
from .phylip import DEFAULT_FORMAT, check_format_specifier, format_matrix, read_matrices
from .support import SupportConfig, annotate_support

_ESCAPES = {
    "\\'": "'",
    '\\"': '"',
    "\\\\": "\\",
    "\\a": "\a",
    "\\b": "\b",
    "\\f": "\f",
    "\\n": "\n",
    "\\r": "\r",
    "\\t": "\t",
    "\\v": "\v",
}


def _unescape(raw: str) -> str:
    if not raw.startswith("\\"):
        return raw[:1]
    return _ESCAPES.get(raw[:2], "?")


def _add_files(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("files", nargs="*", metavar="FILE", help="PHYLIP matrix files (default: stdin).")


def _add_nj(sub) -> None:
    p = sub.add_parser("nj", help="Convert to a tree by neighbor joining.")
    p.add_argument("--no-support", action="store_true", help="Do not compute support values.")
    p.add_argument(
        "--sample-size",
        type=int,
        default=None,
        help="Estimate support from N sampled quartets per edge instead of all.",
    )
    p.add_argument("--seed", type=int, default=None, help="Random seed for quartet sampling.")
    p.add_argument(
        "--precision",
        type=float,
        default=DEFAULT_PRECISION,
        help="Relative tolerance under which quartet pairings count as tied.",
    )
    p.add_argument("--workers", type=int, default=1, help="Threads used for support estimation.")
    _add_files(p)
    p.set_defaults(func=_run_nj)


def _add_mantel(sub) -> None:
    p = sub.add_parser("mantel", help="Compare matrices using the Mantel test.")
    p.add_argument("-f", "--full", action="store_true", help="Output a full matrix of pairwise p-values.")
    p.add_argument("-n", "--normalize", action="store_true", help="Z-score both matrices first.")
    p.add_argument("--trials", type=int, default=DEFAULT_TRIALS, help="Number of permutations.")
    p.add_argument(
        "--statistic",
        choices=["product", "rmsd"],
        default="product",
        help="Test statistic: cross-product sum or root mean squared difference.",
    )
    p.add_argument("--seed", type=int, default=None, help="Random seed for permutations.")
    p.add_argument("--workers", type=int, default=1, help="Threads used for permutations.")
    _add_files(p)
    p.set_defaults(func=_run_mantel)


def _add_format(sub) -> None:
    p = sub.add_parser("format", help="Format the distance matrix.")
    p.add_argument("-f", "--fix", action="store_true", help="Fix small errors.")
    p.add_argument("-v", "--validate", action="store_true", help="Validate for correctness (implies --fix).")
    p.add_argument("-s", "--sort", action="store_true", help="Sort by name.")
    p.add_argument("--precision", type=float, default=DEFAULT_PRECISION, help="Precision used in comparisons.")
    p.add_argument("--separator", default=" ", help="Cell separator (C escapes allowed).")
    p.add_argument("--format", dest="format_specifier", default=DEFAULT_FORMAT, help="printf-style cell format.")
    p.add_argument("--truncate-names", action="store_true", help="Truncate names to ten characters.")
    _add_files(p)
    p.set_defaults(func=_run_format)


def _add_grep(sub) -> None:
    p = sub.add_parser("grep", help="Print submatrix for names matching a pattern.")
    p.add_argument("-f", "--file", action="append", default=[], help="Read the matrix from FILE.")
    p.add_argument("-v", "--invert-match", action="store_true", help="Select non-matching names.")
    p.add_argument("pattern", help="Regular expression searched in each name.")
    _add_files(p)
    p.set_defaults(func=_run_grep)


def _add_compare(sub) -> None:
    p = sub.add_parser("compare", help="Compute the distance between two matrices.")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--rel", dest="measure", action="store_const", const="rel", help="Average relative dissimilarity.")
    group.add_argument("--delta2", dest="measure", action="store_const", const="delta2", help="Undirected Fitch-Margoliash distance.")
    group.add_argument("--p1", dest="measure", action="store_const", const="p1", help="Sum of absolute differences.")
    p.set_defaults(measure="p2")
    p.add_argument("first", metavar="FILE1")
    p.add_argument("second", metavar="FILE2")
    p.set_defaults(func=_run_compare)


def _add_diff(sub) -> None:
    p = sub.add_parser("diff", help="Difference matrix of two matrices.")
    _add_files(p)
    p.set_defaults(func=_run_diff)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phylomat",
        description="Distance matrix tools: neighbor joining, Mantel test, formatting.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages to stderr.")
    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True
    _add_nj(sub)
    _add_mantel(sub)
    _add_format(sub)
    _add_grep(sub)
    _add_compare(sub)
    _add_diff(sub)
    return parser


def _run_nj(args: argparse.Namespace) -> int:
    if args.sample_size is not None and args.sample_size <= 0:
        print("error: --sample-size must be > 0", file=sys.stderr)
        return 2
    if args.workers < 1:
        print("error: --workers must be >= 1", file=sys.stderr)
        return 2
    if args.precision < 0:
        print("error: --precision must be >= 0", file=sys.stderr)
        return 2
    config = SupportConfig(
        sample_size=args.sample_size,
        seed=args.seed,
        tolerance=args.precision,
        workers=args.workers,
    )
    for matrix in read_matrices(args.files):
        try:
            tree = neighbor_joining(matrix)
        except TooFewTaxaError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        if not args.no_support:
            annotate_support(tree, matrix, config)
        print(tree.to_newick())
    return 0


def _run_mantel(args: argparse.Namespace) -> int:
    if args.trials < 1:
        print("error: --trials must be >= 1", file=sys.stderr)
        return 2
    if args.workers < 1:
        print("error: --workers must be >= 1", file=sys.stderr)
        return 2
    config = MantelConfig(
        trials=args.trials,
        normalize=args.normalize,
        statistic=args.statistic,
        seed=args.seed,
        workers=args.workers,
    )
    matrices = read_matrices(args.files)
    if len(matrices) < 2:
        print("error: At least two matrices must be provided.", file=sys.stderr)
        return 1
    if args.full:
        sys.stdout.write(format_matrix(mantel_matrix(matrices, config)))
    else:
        print(f"{mantel(matrices[0], matrices[1], config):g}")
    return 0


def _run_format(args: argparse.Namespace) -> int:
    fmt = args.format_specifier
    check_format_specifier(fmt)
    separator = _unescape(args.separator)
    for matrix in read_matrices(args.files):
        if args.fix or args.validate:
            matrix = fix(matrix, args.precision)
        if args.validate:
            matrix = validate(matrix, args.truncate_names, args.precision)
        if args.sort:
            matrix = matrix.sort_by_name()
        sys.stdout.write(format_matrix(matrix, separator, fmt, args.truncate_names))
    return 0


def _run_grep(args: argparse.Namespace) -> int:
    paths = list(args.file) + list(args.files)
    for matrix in read_matrices(paths):
        sys.stdout.write(format_matrix(grep(matrix, args.pattern, args.invert_match)))
    return 0


def _run_compare(args: argparse.Namespace) -> int:
    measure = MEASURES[args.measure]
    first = read_matrices([args.first])
    second = read_matrices([args.second])
    for a, b in zip(first, second):
        print(f"{measure(a, b):g}")
    return 0


def _run_diff(args: argparse.Namespace) -> int:
    matrices = read_matrices(args.files)
    if len(matrices) < 2:
        print("error: At least two matrices must be provided.", file=sys.stderr)
        return 1
    sys.stdout.write(format_matrix(diff(matrices[0], matrices[1])))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(levelname)s: %(message)s",
    )
    try:
        return args.func(args)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
