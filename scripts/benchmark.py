#!/usr/bin/env python3
"""Time neighbor joining and quartet support on random matrices and emit JSON."""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path

import numpy as np

from phylomat.matrix import DistanceMatrix
from phylomat.nj import neighbor_joining
from phylomat.support import SupportConfig, annotate_support


def random_matrix(rng: np.random.Generator, n: int, noise: float) -> DistanceMatrix:
    """Caterpillar path lengths plus symmetric uniform noise."""
    pendant = rng.uniform(0.5, 2.0, size=n)
    spine = np.concatenate([[0.0], np.cumsum(rng.uniform(0.2, 1.0, size=n - 1))])
    values = np.abs(spine[:, None] - spine[None, :]) + pendant[:, None] + pendant[None, :]
    jitter = rng.uniform(0.0, noise, size=(n, n))
    values = values + (jitter + jitter.T) / 2.0
    np.fill_diagonal(values, 0.0)
    return DistanceMatrix([f"T{i}" for i in range(n)], values)


def _supports(tree) -> list[float]:
    out = []
    for handle in tree.internal_nodes():
        node = tree.node(handle)
        for side in ("left", "right", "extra"):
            value = getattr(node, f"{side}_support", None)
            if value is not None:
                out.append(value)
    return out


def run_one(matrix: DistanceMatrix, config: SupportConfig | None) -> dict:
    t0 = time.perf_counter()
    tree = neighbor_joining(matrix)
    nj_seconds = time.perf_counter() - t0
    support_seconds = 0.0
    supports: list[float] = []
    if config is not None:
        t1 = time.perf_counter()
        annotate_support(tree, matrix, config)
        support_seconds = time.perf_counter() - t1
        supports = _supports(tree)
    return {
        "n_taxa": matrix.size,
        "nj_seconds": nj_seconds,
        "support_seconds": support_seconds,
        "mean_support": float(np.mean(supports)) if supports else None,
    }


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--sizes", default="16,32,64", help="Comma-separated taxon counts.")
    parser.add_argument("--noise", type=float, default=1.0)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument(
        "--sample-size",
        type=int,
        default=None,
        help="Sampled quartets per edge (default: exact support).",
    )
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--no-support", action="store_true", help="Time neighbor joining only.")
    parser.add_argument("--output", default=None, help="Optional JSON output path.")
    args = parser.parse_args()

    sizes = [int(x) for x in args.sizes.split(",") if x.strip()]
    config = None
    if not args.no_support:
        config = SupportConfig(sample_size=args.sample_size, seed=args.seed, workers=args.workers)

    rng = np.random.default_rng(args.seed)
    results = [run_one(random_matrix(rng, n, args.noise), config) for n in sizes]
    payload = {
        "seed": args.seed,
        "noise": float(args.noise),
        "sample_size": args.sample_size,
        "workers": int(args.workers),
        "support": not args.no_support,
        "results": results,
    }
    text = json.dumps(payload, indent=2)
    print(text)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
