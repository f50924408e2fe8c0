"""Quartet support tests."""

from __future__ import annotations

import numpy as np
import pytest

from phylomat.matrix import DistanceMatrix
from phylomat.nj import neighbor_joining
from phylomat.support import (
    QuartetColor,
    SupportConfig,
    annotate_support,
    edge_colorings,
    quartet_supports,
    sample_quartets,
    support_exact,
    support_sampled,
)
from phylomat.trees import Root


def _four_taxa() -> DistanceMatrix:
    return DistanceMatrix(
        ["A", "B", "C", "D"],
        [
            [0, 2, 4, 4],
            [2, 0, 4, 4],
            [4, 4, 0, 4],
            [4, 4, 4, 0],
        ],
    )


def _noisy(rng: np.random.Generator, n: int, noise: float = 0.6) -> DistanceMatrix:
    pendant = rng.uniform(0.5, 2.0, size=n)
    spine = np.concatenate([[0.0], np.cumsum(rng.uniform(0.2, 1.0, size=n - 1))])
    values = np.abs(spine[:, None] - spine[None, :]) + pendant[:, None] + pendant[None, :]
    jitter = rng.uniform(0.0, noise, size=(n, n))
    values = values + (jitter + jitter.T) / 2.0
    np.fill_diagonal(values, 0.0)
    return DistanceMatrix([f"T{i}" for i in range(n)], values)


def _all_supports(tree) -> list[float]:
    out = []
    for handle in tree.internal_nodes():
        node = tree.node(handle)
        out += [node.left_support, node.right_support]
        if isinstance(node, Root):
            out.append(node.extra_support)
    return [x for x in out if x is not None]


def test_single_quartet_pairing():
    # d(x,y) + d(z,w) = 6 is the unique minimum.
    d = np.array(
        [
            [0, 2, 4, 4],
            [2, 0, 4, 4],
            [4, 4, 0, 4],
            [4, 4, 4, 0],
        ],
        dtype=float,
    )
    assert quartet_supports(d, 0, 1, 2, 3)
    # Swap so that d(x,z) + d(y,w) becomes the strict minimum.
    swapped = d.copy()
    swapped[0, 1] = swapped[1, 0] = 4
    swapped[0, 2] = swapped[2, 0] = 2
    assert not quartet_supports(swapped, 0, 1, 2, 3)


def test_near_ties_do_not_contradict():
    d = np.array(
        [
            [0, 2.0, 1.95, 4],
            [2.0, 0, 4, 2.0],
            [1.95, 4, 0, 2.0],
            [4, 2.0, 2.0, 0],
        ]
    )
    # ab+cd = 4.0, ac+bd = 3.95 is within 5% of 4.0.
    assert quartet_supports(d, 0, 1, 2, 3, tolerance=0.05)
    assert not quartet_supports(d, 0, 1, 2, 3, tolerance=0.0)


def test_scenario_support_and_newick():
    m = _four_taxa()
    tree = annotate_support(neighbor_joining(m), m)
    root = tree.root_node()
    assert root.left_support == pytest.approx(1.0)
    assert root.right_support is None
    assert root.extra_support is None
    assert tree.to_newick() == "((A:1.0000e+00,B:1.0000e+00)100:1.0000e+00,D:2.0000e+00,C:2.0000e+00);"


def test_edge_colorings_partition_leaves():
    rng = np.random.default_rng(5)
    m = _noisy(rng, 10)
    tree = neighbor_joining(m)
    edges = edge_colorings(tree)
    # An unrooted binary tree on n leaves has n - 3 internal edges; the root
    # trifurcation lets each be seen from one side only.
    assert len(edges) == m.size - 3
    for edge in edges:
        assert edge.colors.shape == (m.size,)
        for color in QuartetColor:
            assert np.count_nonzero(edge.colors == color) >= 1


def test_support_exact_counts_rejections():
    d = np.array(
        [
            [0, 4, 2, 4],
            [4, 0, 4, 4],
            [2, 4, 0, 4],
            [4, 4, 4, 0],
        ],
        dtype=float,
    )
    colors = np.array([QuartetColor.A, QuartetColor.B, QuartetColor.C, QuartetColor.D], dtype=np.int8)
    assert support_exact(d, colors) == 0.0
    colors_empty = np.array([QuartetColor.A, QuartetColor.A, QuartetColor.C, QuartetColor.D], dtype=np.int8)
    assert support_exact(d, colors_empty) is None


def test_support_values_in_unit_interval():
    rng = np.random.default_rng(11)
    m = _noisy(rng, 14, noise=2.0)
    tree = annotate_support(neighbor_joining(m), m, SupportConfig(tolerance=0.0))
    supports = _all_supports(tree)
    assert len(supports) == m.size - 3
    assert all(0.0 <= s <= 1.0 for s in supports)


def test_sample_quartets_distinct_and_in_classes():
    colors = np.array([1, 1, 2, 2, 3, 3, 0, 0, 0], dtype=np.int8)
    rng = np.random.default_rng(0)
    quartets = sample_quartets(colors, 20, rng)
    assert len(quartets) == 20
    assert len(set(quartets)) == 20
    for a, b, c, d in quartets:
        assert colors[a] == QuartetColor.A
        assert colors[b] == QuartetColor.B
        assert colors[c] == QuartetColor.C
        assert colors[d] == QuartetColor.D


def test_sampled_falls_back_to_exact():
    rng = np.random.default_rng(2)
    m = _noisy(rng, 8)
    d = np.asarray(m.values)
    colors = np.array([1, 1, 2, 3, 3, 0, 0, 0], dtype=np.int8)
    # 2 * 1 * 2 * 3 = 12 quartets < 50
    exact = support_exact(d, colors)
    assert support_sampled(d, colors, 50, np.random.default_rng(1)) == exact


def test_sampled_converges_to_exact():
    rng = np.random.default_rng(21)
    m = _noisy(rng, 16, noise=2.5)
    tree = neighbor_joining(m)
    exact = _all_supports(annotate_support(tree, m, SupportConfig(tolerance=0.0)))
    sampled_tree = neighbor_joining(m)
    sampled = _all_supports(
        annotate_support(sampled_tree, m, SupportConfig(sample_size=400, seed=7, tolerance=0.0))
    )
    assert len(exact) == len(sampled)
    for e, s in zip(exact, sampled):
        assert abs(e - s) < 0.12


def test_seeded_sampling_is_reproducible_and_thread_independent():
    rng = np.random.default_rng(8)
    m = _noisy(rng, 18, noise=2.0)
    configs = [
        SupportConfig(sample_size=60, seed=123),
        SupportConfig(sample_size=60, seed=123),
        SupportConfig(sample_size=60, seed=123, workers=4),
    ]
    results = [_all_supports(annotate_support(neighbor_joining(m), m, c)) for c in configs]
    assert results[0] == results[1] == results[2]


def test_no_support_leaves_fields_empty():
    m = _four_taxa()
    tree = neighbor_joining(m)
    assert _all_supports(tree) == []


def test_config_validation():
    with pytest.raises(ValueError):
        SupportConfig(sample_size=0)
    with pytest.raises(ValueError):
        SupportConfig(tolerance=-1.0)
    with pytest.raises(ValueError):
        SupportConfig(workers=0)
