"""Unrooted tree arena built by neighbor joining, and Newick output."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import treeswift

Handle = int

LENGTH_FORMAT = "%1.4e"


@dataclass
class Node:
    """Arena entry. Leaves carry ``index`` into the matrix names; internal
    nodes carry ``index = -1`` and two child handles."""

    index: int = -1
    left: Optional[Handle] = None
    right: Optional[Handle] = None
    left_length: float = 0.0
    right_length: float = 0.0
    left_support: Optional[float] = None
    right_support: Optional[float] = None

    def is_leaf(self) -> bool:
        return self.left is None


@dataclass
class Root(Node):
    """Ternary root: the third branch stands in for the unrooted trifurcation."""

    extra: Optional[Handle] = None
    extra_length: float = 0.0
    extra_support: Optional[float] = None


@dataclass
class Tree:
    names: Tuple[str, ...]
    nodes: List[Node]
    root: Handle

    @property
    def n_leaves(self) -> int:
        return len(self.names)

    def node(self, handle: Handle) -> Node:
        return self.nodes[handle]

    def root_node(self) -> Root:
        node = self.nodes[self.root]
        if not isinstance(node, Root):
            raise TypeError(f"node {self.root} is not a root node")
        return node

    def is_leaf(self, handle: Handle) -> bool:
        return self.nodes[handle].is_leaf()

    def leaves(self) -> List[Handle]:
        return [h for h, node in enumerate(self.nodes) if node.is_leaf()]

    def internal_nodes(self) -> List[Handle]:
        """Join nodes in creation order, followed by the root."""
        return [h for h, node in enumerate(self.nodes) if not node.is_leaf()]

    def children(self, handle: Handle) -> List[Handle]:
        node = self.nodes[handle]
        out = [h for h in (node.left, node.right) if h is not None]
        if isinstance(node, Root) and node.extra is not None:
            out.append(node.extra)
        return out

    def iter_leaf_indices(self, handle: Handle) -> Iterator[int]:
        """Matrix indices of all leaves below ``handle`` (left to right)."""
        stack = [handle]
        while stack:
            node = self.nodes[stack.pop()]
            if node.is_leaf():
                yield node.index
                continue
            stack.append(node.right)
            stack.append(node.left)

    def leaf_names(self, handle: Handle) -> List[str]:
        return [self.names[i] for i in self.iter_leaf_indices(handle)]

    def _branch_suffix(self, child: Handle, length: float, support: Optional[float]) -> str:
        label = ""
        if support is not None and not self.nodes[child].is_leaf():
            label = str(int(support * 100))
        return label + ":" + LENGTH_FORMAT % length

    def _clade_newick(self, handle: Handle) -> str:
        out: List[str] = []
        # Strings on the stack are emitted verbatim, integers are expanded.
        stack: List[object] = [handle]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                out.append(item)
                continue
            node = self.nodes[item]
            if node.is_leaf():
                out.append(self.names[node.index])
                continue
            out.append("(")
            stack.append(")")
            stack.append(self._branch_suffix(node.right, node.right_length, node.right_support))
            stack.append(node.right)
            stack.append(",")
            stack.append(self._branch_suffix(node.left, node.left_length, node.left_support))
            stack.append(node.left)
        return "".join(out)

    def to_newick(self) -> str:
        root = self.root_node()
        parts = [
            self._clade_newick(root.left) + self._branch_suffix(root.left, root.left_length, root.left_support),
            self._clade_newick(root.right) + self._branch_suffix(root.right, root.right_length, root.right_support),
            self._clade_newick(root.extra) + self._branch_suffix(root.extra, root.extra_length, root.extra_support),
        ]
        return "(" + ",".join(parts) + ");"

    def to_treeswift(self) -> treeswift.Tree:
        """Hand the tree to treeswift; support percentages become node labels."""
        newick = self.to_newick()
        if hasattr(treeswift, "read_tree_newick"):
            return treeswift.read_tree_newick(newick)
        return treeswift.read_tree(io.StringIO(newick), "newick")


def new_arena(names: Sequence[str]) -> List[Node]:
    """Arena pre-populated with one leaf per matrix row."""
    return [Node(index=i) for i in range(len(names))]
