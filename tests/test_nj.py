"""Neighbor-joining and Newick output tests."""

from __future__ import annotations

import numpy as np
import pytest

from phylomat.exceptions import TooFewTaxaError
from phylomat.matrix import DistanceMatrix
from phylomat.nj import closest_pair, divergences, neighbor_joining
from phylomat.trees import Node, Root, Tree


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


def _additive(rng: np.random.Generator, n: int) -> DistanceMatrix:
    """Path-length matrix of a random caterpillar tree with positive edges."""
    pendant = rng.uniform(0.5, 2.0, size=n)
    spine = np.concatenate([[0.0], np.cumsum(rng.uniform(0.5, 2.0, size=n - 1))])
    values = np.abs(spine[:, None] - spine[None, :]) + pendant[:, None] + pendant[None, :]
    np.fill_diagonal(values, 0.0)
    return DistanceMatrix([f"T{i}" for i in range(n)], values)


def test_divergence_and_tie_break_on_scenario():
    m = _four_taxa()
    work = np.array(m.values, dtype=float)
    r = divergences(work, 4)
    assert list(r) == [5.0, 5.0, 6.0, 6.0]
    # (A,B) and (C,D) both reach Q = -8; the first in scan order wins.
    assert closest_pair(work, r, 4) == (0, 1)


def test_scenario_branch_lengths():
    tree = neighbor_joining(_four_taxa())
    root = tree.root_node()
    ab = tree.node(root.left)
    assert sorted(tree.leaf_names(root.left)) == ["A", "B"]
    assert ab.left_length == pytest.approx(1.0)
    assert ab.right_length == pytest.approx(1.0)
    assert root.left_length == pytest.approx(1.0)
    # Slot 1 is refilled from the last slot, so D precedes C.
    assert tree.leaf_names(root.right) == ["D"]
    assert tree.leaf_names(root.extra) == ["C"]
    assert root.right_length == pytest.approx(2.0)
    assert root.extra_length == pytest.approx(2.0)


def test_scenario_newick_without_support():
    tree = neighbor_joining(_four_taxa())
    assert tree.to_newick() == "((A:1.0000e+00,B:1.0000e+00):1.0000e+00,D:2.0000e+00,C:2.0000e+00);"


def test_rejects_fewer_than_four_taxa():
    m = DistanceMatrix(["A", "B", "C"], [[0, 1, 1], [1, 0, 1], [1, 1, 0]])
    with pytest.raises(TooFewTaxaError, match="at least four species"):
        neighbor_joining(m)


@pytest.mark.parametrize("n", [4, 5, 9, 20])
def test_node_counts(n):
    rng = np.random.default_rng(n)
    tree = neighbor_joining(_additive(rng, n))
    assert tree.n_leaves == n
    assert len(tree.leaves()) == n
    internal = tree.internal_nodes()
    assert len(internal) == n - 2
    assert isinstance(tree.node(internal[-1]), Root)
    assert len(tree.nodes) == 2 * n - 2
    assert sorted(tree.iter_leaf_indices(tree.root)) == list(range(n))


def test_additive_matrix_is_reproduced():
    rng = np.random.default_rng(42)
    m = _additive(rng, 12)
    tree = neighbor_joining(m)

    # Path length between every pair of leaves must match the input.
    parent: dict[int, tuple[int, float]] = {}
    for handle in tree.internal_nodes():
        node = tree.node(handle)
        parent[node.left] = (handle, node.left_length)
        parent[node.right] = (handle, node.right_length)
        if isinstance(node, Root):
            parent[node.extra] = (handle, node.extra_length)

    def path_to_root(leaf: int) -> dict[int, float]:
        out = {leaf: 0.0}
        cur, acc = leaf, 0.0
        while cur in parent:
            cur, length = parent[cur]
            acc += length
            out[cur] = acc
        return out

    for i in range(m.size):
        pi = path_to_root(i)
        for j in range(i + 1, m.size):
            pj = path_to_root(j)
            common = min((pi[h] + pj[h] for h in pi if h in pj))
            assert common == pytest.approx(m.entry(i, j))


def test_input_matrix_is_not_modified():
    m = _four_taxa()
    before = np.array(m.values)
    neighbor_joining(m)
    assert np.array_equal(m.values, before)


def test_to_treeswift_leaves_and_lengths():
    rng = np.random.default_rng(3)
    m = _additive(rng, 8)
    tree = neighbor_joining(m)
    ts = tree.to_treeswift()
    leaves = sorted(str(n.label) for n in ts.traverse_leaves())
    assert leaves == sorted(m.names)
    for node in ts.traverse_preorder():
        if node is not ts.root:
            assert node.edge_length is not None


def test_negative_branch_lengths_are_kept():
    # Strongly non-additive input.
    m = DistanceMatrix(
        ["A", "B", "C", "D", "E"],
        [
            [0, 1, 9, 9, 1],
            [1, 0, 1, 9, 9],
            [9, 1, 0, 1, 9],
            [9, 9, 1, 0, 1],
            [1, 9, 9, 1, 0],
        ],
    )
    tree = neighbor_joining(m)
    lengths = []
    for handle in tree.internal_nodes():
        node = tree.node(handle)
        lengths += [node.left_length, node.right_length]
    lengths.append(tree.root_node().extra_length)
    assert any(x < 0 for x in lengths)
    assert tree.root_node().right_length == pytest.approx(-0.5)
    assert ",D:-5.0000e-01," in tree.to_newick()


def _sequential_closest_pair(m: list[list[float]]) -> tuple[int, int]:
    k = len(m)
    r = []
    for row in m:
        acc = 0.0
        for x in row:
            acc += x
        r.append(acc / (k - 2))
    best, best_q = (0, 1), m[0][1] - r[0] - r[1]
    for i in range(k):
        for j in range(i + 1, k):
            q = m[i][j] - r[i] - r[j]
            if q < best_q:
                best, best_q = (i, j), q
    return best


def test_closest_pair_matches_sequential_scan_on_ties():
    rng = np.random.default_rng(2024)
    choices = np.array([0.1, 0.2, 0.3, 0.7, 1.1])
    for _ in range(300):
        n = int(rng.integers(9, 20))
        upper = np.triu(rng.choice(choices, size=(n, n)), k=1)
        work = upper + upper.T
        expected = _sequential_closest_pair(work.tolist())
        assert closest_pair(work, divergences(work, n), n) == expected


def test_divergences_sum_rows_left_to_right():
    values = [0.1, 0.2, 0.3, 0.7, 1.1, 0.1, 0.2, 0.3, 0.7, 1.1, 0.3, 0.1]
    work = np.array([values, values[::-1]] + [values] * 10)
    acc = 0.0
    for x in values:
        acc += x
    r = divergences(work, 12)
    assert r[0] == acc / 10


def test_root_node_requires_root_slot():
    tree = Tree(names=("A",), nodes=[Node(index=0)], root=0)
    with pytest.raises(TypeError):
        tree.root_node()
